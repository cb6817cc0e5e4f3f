"""Storage layer: database pool, cache, migrations, models and repositories."""
