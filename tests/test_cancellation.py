import pytest

from highlightcut.cancellation import CancellationToken, check_cancel
from highlightcut.errors import EXECUTION_CANCELLED, ExecutionCancelled


def test_cancel_raises_at_checkpoint() -> None:
    token = CancellationToken()
    check_cancel(token)
    check_cancel(None)
    token.cancel()
    assert token.cancelled
    with pytest.raises(ExecutionCancelled) as exc:
        check_cancel(token)
    assert exc.value.error_code == EXECUTION_CANCELLED


def test_listener_runs_once_and_is_removed() -> None:
    token = CancellationToken()
    calls = []
    with token.on_cancel(lambda: calls.append("abort")):
        assert token.listener_count() == 1
        token.cancel()
        token.cancel()
    assert calls == ["abort"]
    assert token.listener_count() == 0


def test_listener_removed_without_cancel() -> None:
    token = CancellationToken()
    with token.on_cancel(lambda: None):
        pass
    assert token.listener_count() == 0


def test_already_cancelled_runs_immediately() -> None:
    token = CancellationToken()
    token.cancel()
    calls = []
    with token.on_cancel(lambda: calls.append(1)):
        assert calls == [1]
    assert token.listener_count() == 0
