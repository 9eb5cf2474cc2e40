from __future__ import annotations
from typing import Iterable, List, Optional, Tuple
from flask import request, abort, make_response
import hashlib
import json

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def normalize_pagination(limit_raw, offset_raw) -> Tuple[int, int]:
    try:
        limit = int(limit_raw) if limit_raw is not None else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)
    return limit, offset


def request_pagination() -> Tuple[int, int]:
    try:
        return normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))


def compute_etag(rows: Iterable[dict], total: int, limit: int, offset: int) -> str:
    # whole rows, not ids: edits must change the tag
    seed = f"{json.dumps(list(rows), sort_keys=True)}|{total}|{limit}|{offset}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: List[dict], total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def make_cached_list_response(rows: List[dict], total: int, limit: int, offset: int, head: bool = False):
    """List response with ETag; returns 304 when If-None-Match matches."""
    etag = compute_etag(rows, total, limit, offset)
    inm: Optional[str] = request.headers.get('If-None-Match')
    if inm and inm.strip('"') == etag:
        resp = make_response('', 304)
    else:
        resp = make_response(build_list_payload(rows, total, limit, offset))
        if head:
            resp.set_data(b'')
    resp.headers['ETag'] = etag
    return resp
