import os

os.environ.setdefault("LISTINGS_OTEL_ENABLED", "false")
