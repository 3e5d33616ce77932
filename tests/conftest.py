import os

# Keep test runs off the audit log file; must happen before timesync.core.config is imported
os.environ.setdefault("AUDIT_LOG_PATH", "")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
