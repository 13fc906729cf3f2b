from pacsvc.errors import (
    AddressDerivationError,
    InitializationError,
    PacError,
    RenderError,
    clean_text,
    public_error_message,
)


def test_error_kinds_share_a_base():
    for cls in (InitializationError, RenderError, AddressDerivationError):
        assert issubclass(cls, PacError)


def test_clean_text_strips_newlines_and_bounds_length():
    s = "hello\nworld\r\n\t\x00!" * 5
    out = clean_text(s, max_len=20)
    assert "\n" not in out
    assert "\r" not in out
    assert len(out) <= 20


def test_render_error_details_hidden_by_default(monkeypatch):
    monkeypatch.delenv("EXPOSE_INTERNAL_ERRORS", raising=False)
    msg = public_error_message(RenderError("template blew up at /etc/secret"))
    assert "secret" not in msg


def test_public_error_message_shows_valueerror_message(monkeypatch):
    monkeypatch.delenv("EXPOSE_INTERNAL_ERRORS", raising=False)
    msg = public_error_message(ValueError("host is required."))
    assert "host is required" in msg


def test_public_error_message_can_expose_details(monkeypatch):
    monkeypatch.setenv("EXPOSE_INTERNAL_ERRORS", "1")
    msg = public_error_message(RenderError("detail"))
    assert "RenderError" in msg
    assert "detail" in msg
