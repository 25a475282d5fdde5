"""
Unit tests for the sync exception hierarchy
"""

from core.exceptions import (
    FetchError,
    NetworkError,
    ProtocolError,
    ResponseTooLargeError,
    SyncException,
)


class TestSyncException:

    def test_str_includes_context_and_cause(self):
        cause = ConnectionError("reset by peer")
        error = NetworkError("Request failed", context={"url": "https://x/a.xml"}, original_exception=cause)

        text = str(error)
        assert text.startswith("NetworkError: Request failed")
        assert "url=https://x/a.xml" in text
        assert "Caused by: ConnectionError: reset by peer" in text
        assert "error_timestamp" not in text
        assert error.__cause__ is cause

    def test_to_dict(self):
        error = ProtocolError("Unexpected HTTP status 500", context={"url": "u"}, status_code=500)

        data = error.to_dict()
        assert data["error_type"] == "ProtocolError"
        assert data["context"]["status_code"] == 500
        assert data["original_error"] is None

    def test_hierarchy(self):
        error = ResponseTooLargeError("too big", status_code=200)
        assert isinstance(error, ProtocolError)
        assert isinstance(error, FetchError)
        assert isinstance(error, SyncException)
        assert error.status_code == 200
