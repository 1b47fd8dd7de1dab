import os

# Default env for app settings in tests.
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("AMS_MODE", "api")
os.environ.setdefault("PUSH_ENABLED", "false")
os.environ.setdefault("REALTIME_BROADCAST_ENABLED", "false")
