"""
Assertions for service results and canned remote responses.
"""
import httpx


def ok(result):
    """Assert a service call succeeded and return its value."""
    assert result.is_ok, getattr(result, "error", None)
    return result.value


def err(result, kind):
    """Assert a service call failed with ``kind`` and return the error."""
    assert not result.is_ok, "expected a failure"
    assert isinstance(result.error, kind), result.error
    return result.error


def undecodable_body():
    """A 200 whose gzip body cannot be inflated."""
    return httpx.Response(200, headers={"Content-Encoding": "gzip"}, stream=httpx.ByteStream(b"not-gzip"))
