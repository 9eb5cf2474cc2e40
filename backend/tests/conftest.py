import os, sys, pytest
# Ensure backend directory is on path so 'inventory_iam' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from inventory_iam import create_app, get_db
from inventory_iam.models.account import Base
# Import all model modules to ensure tables are registered before create_all
import inventory_iam.models.audit  # noqa: F401


@pytest.fixture()
def app_instance():
    # fresh in-memory database per test so directory counts are exact
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
        'IDENTITY_PROVIDER': 'local',
    })
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
        yield app


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()
