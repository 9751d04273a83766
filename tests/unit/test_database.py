"""Engine options derived from settings."""

from learnquest.database import engine_options


def test_asyncpg_statement_cache_passed_through():
    options = engine_options("postgresql+asyncpg://u:p@db/learnquest", statement_cache_size=0)
    assert options["connect_args"] == {"statement_cache_size": 0}
    assert options["pool_pre_ping"] is True


def test_statement_cache_left_to_driver_by_default():
    options = engine_options("postgresql+asyncpg://u:p@db/learnquest", pool_size=5, max_overflow=2)
    assert "connect_args" not in options
    assert (options["pool_size"], options["max_overflow"]) == (5, 2)


def test_statement_cache_ignored_for_other_drivers():
    assert "connect_args" not in engine_options("sqlite+aiosqlite:///lq.db", statement_cache_size=0)
