import pytest

from stressbench.core.errors import HarnessError
from stressbench.core.shutdown import ShutdownSignal, ShutdownToken


def test_signal_starts_unset():
    signal = ShutdownSignal()
    assert not signal.triggered
    assert not signal.token.is_set


def test_token_is_read_only_view():
    signal = ShutdownSignal()
    token = signal.token
    assert isinstance(token, ShutdownToken)
    assert not hasattr(token, "trigger")
    signal.trigger()
    assert token.is_set


def test_second_trigger_is_harness_defect():
    signal = ShutdownSignal()
    signal.trigger()
    with pytest.raises(HarnessError):
        signal.trigger()
    assert signal.triggered
