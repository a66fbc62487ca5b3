import os

TEST_DB = os.getenv("TEST_DATABASE_PATH", "/tmp/price_alerts_tests.db")
os.environ.setdefault("PRICE_ALERTS_DATABASE_URL", f"sqlite+pysqlite:///{TEST_DB}")
os.environ.setdefault("PRICE_ALERTS_JWT_SECRET", "test-secret")
