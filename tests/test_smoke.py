from __future__ import annotations

import types
from pathlib import Path


def test_healthcheck_import() -> None:
    import coursepay.healthcheck as hc
    assert isinstance(hc, types.ModuleType)


def test_dispatcher_builds() -> None:
    from coursepay.main import build_dispatcher

    dp = build_dispatcher()
    assert dp is not None


def test_env_example_keys_present() -> None:
    # Ensure critical env keys exist in example template for documentation correctness
    example = (Path(__file__).parents[1] / ".env.example").read_text(encoding="utf-8")
    for key in [
        'TELEGRAM_BOT_TOKEN',
        'TELEGRAM_ADMIN_IDS',
        'DB_URL',
        'CLAIM_VALIDITY_HOURS',
        'ENROLLMENT_BASE_URL',
    ]:
        assert key in example
