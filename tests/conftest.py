import pytest

from tests.fixtures_transport import RecordingTransport


@pytest.fixture
def recording_transport() -> RecordingTransport:
    """A transport answering every call with an empty 200 response."""
    return RecordingTransport()
