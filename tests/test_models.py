from __future__ import annotations

from pygsds.models import CtxGetResponse, ServerContext, format_banner


def test_banner_prefers_tryout_scheme() -> None:
    record = {"tryout_id": "T1", "group_code": "G2", "rep_id": "R3", "game_id": "T1", "play_id": "R3"}

    assert format_banner(record) == "Tryout: T1 • Group: G2 • Rep: R3"


def test_banner_falls_back_to_game_scheme_then_placeholder() -> None:
    assert format_banner({"game_id": "G1", "drive_id": "", "play_id": "P4"}) == "Game: G1 • Play: P4"
    assert format_banner({"updated_at": 5}) == "No context set"


def test_server_context_tolerates_nulls_and_numbers() -> None:
    ctx = ServerContext.model_validate({"game_id": 42, "drive_id": None, "ts": "1700000000000", "extra": "x"})

    assert ctx.game_id == "42"
    assert ctx.drive_id == ""
    assert ctx.play_id == ""
    assert ctx.ts == 1_700_000_000_000
    assert ctx.raw["extra"] == "x"


def test_ctx_get_envelope_with_null_ctx() -> None:
    response = CtxGetResponse.model_validate({"ok": True, "ctx": None})

    assert response.ok is True
    assert response.ctx is None
