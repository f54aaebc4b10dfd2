"""Analysis engines: pure algorithms plus the runners that persist their results."""
