import pytest


class TrackingRecorder(object):
    def __init__(self) -> None:
        self.calls = []

    def __call__(self, experiment, result) -> None:
        self.calls.append((experiment, result))


@pytest.fixture
def tracker():
    return TrackingRecorder()
