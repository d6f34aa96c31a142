import pytest

from apps.payments.split import SplitPolicy


def test_split_disabled_by_default(settings):
    settings.PAYMENT_SPLIT_ENABLED = False
    assert SplitPolicy().calculate_split() is None


def test_split_from_settings(settings):
    settings.PAYMENT_SPLIT_ENABLED = True
    settings.PAYMENT_SPLIT_RECIPIENT_ID = "rp_platform"
    settings.PAYMENT_SPLIT_PERCENTAGE = "15"
    settings.PAYMENT_SPLIT_LIABLE = True

    rules = SplitPolicy().calculate_split()
    assert len(rules) == 1
    assert rules[0].recipient_id == "rp_platform"
    assert rules[0].percentage == 15.0
    assert rules[0].liable is True
    assert rules[0].charge_processing_fee is False


@pytest.mark.parametrize("percentage", ["0", "-5", "100.5", "abc", None])
def test_split_with_invalid_percentage_is_skipped(percentage):
    assert SplitPolicy(enabled=True, recipient_id="rp_1", percentage=percentage).calculate_split() is None


def test_split_without_recipient_is_skipped():
    assert SplitPolicy(enabled=True, recipient_id="  ", percentage="10").calculate_split() is None
