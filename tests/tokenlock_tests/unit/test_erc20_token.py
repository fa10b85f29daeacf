import pytest

from tokenlock.core.clock import SimulatedClock
from tokenlock.core.contracts.erc20 import UINT256_MAX, ERC20Factory, ERC20Token
from tokenlock.core.exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidAddressError,
    InvalidAmountError,
    TokenError,
)

OWNER = "0x" + "11" * 20
ALICE = "0x" + "aa" * 20
BOB = "0x" + "bb" * 20
SPENDER = "0x" + "cc" * 20
ZERO = "0x" + "0" * 40


@pytest.fixture
def erc20():
    token = ERC20Token(name="Test", symbol="TST", owner=OWNER)
    token.mint(OWNER, ALICE, 1_000)
    return token


def test_mint_updates_supply_and_emits_event(erc20):
    assert erc20.total_supply == 1_000
    assert erc20.balance_of(ALICE) == 1_000
    event = erc20.events[-1]
    assert event.event_type == "Transfer"
    assert event.from_address == ZERO
    assert event.value == 1_000


def test_mint_requires_owner(erc20):
    with pytest.raises(TokenError, match="not owner"):
        erc20.mint(ALICE, ALICE, 1)


def test_mint_respects_max_supply():
    token = ERC20Token(name="Capped", symbol="CAP", owner=OWNER, max_supply=10)
    token.mint(OWNER, ALICE, 10)
    with pytest.raises(TokenError, match="max supply"):
        token.mint(OWNER, ALICE, 1)


def test_transfer(erc20):
    assert erc20.transfer(ALICE, BOB, 400) is True
    assert erc20.balance_of(ALICE) == 600
    assert erc20.balance_of(BOB) == 400


def test_transfer_exceeding_balance(erc20):
    with pytest.raises(InsufficientBalanceError):
        erc20.transfer(ALICE, BOB, 1_001)
    assert erc20.balance_of(ALICE) == 1_000
    assert erc20.balance_of(BOB) == 0


def test_transfer_to_zero_address(erc20):
    with pytest.raises(InvalidAddressError, match="zero address"):
        erc20.transfer(ALICE, ZERO, 1)


def test_negative_amount_rejected(erc20):
    with pytest.raises(InvalidAmountError):
        erc20.transfer(ALICE, BOB, -5)


def test_addresses_are_case_insensitive(erc20):
    erc20.transfer(ALICE.upper().replace("0X", "0x"), BOB, 1)
    assert erc20.balance_of(BOB.upper().replace("0X", "0x")) == 1


def test_approve_and_transfer_from(erc20):
    erc20.approve(ALICE, SPENDER, 300)
    assert erc20.allowance(ALICE, SPENDER) == 300

    erc20.transfer_from(SPENDER, ALICE, BOB, 200)

    assert erc20.allowance(ALICE, SPENDER) == 100
    assert erc20.balance_of(BOB) == 200
    assert erc20.balance_of(ALICE) == 800


def test_transfer_from_insufficient_allowance(erc20):
    erc20.approve(ALICE, SPENDER, 10)
    with pytest.raises(InsufficientAllowanceError) as excinfo:
        erc20.transfer_from(SPENDER, ALICE, BOB, 11)
    assert excinfo.value.details["allowance"] == 10
    assert erc20.allowance(ALICE, SPENDER) == 10
    assert erc20.balance_of(ALICE) == 1_000


def test_transfer_from_insufficient_balance_keeps_allowance(erc20):
    erc20.approve(ALICE, SPENDER, 5_000)
    with pytest.raises(InsufficientBalanceError):
        erc20.transfer_from(SPENDER, ALICE, BOB, 2_000)
    assert erc20.allowance(ALICE, SPENDER) == 5_000


def test_unlimited_allowance_not_decremented(erc20):
    erc20.approve(ALICE, SPENDER, UINT256_MAX)
    erc20.transfer_from(SPENDER, ALICE, BOB, 500)
    assert erc20.allowance(ALICE, SPENDER) == UINT256_MAX


def test_increase_and_decrease_allowance(erc20):
    erc20.increase_allowance(ALICE, SPENDER, 50)
    erc20.increase_allowance(ALICE, SPENDER, 25)
    assert erc20.allowance(ALICE, SPENDER) == 75

    erc20.decrease_allowance(ALICE, SPENDER, 70)
    assert erc20.allowance(ALICE, SPENDER) == 5

    with pytest.raises(InsufficientAllowanceError):
        erc20.decrease_allowance(ALICE, SPENDER, 6)


def test_increase_allowance_saturates(erc20):
    erc20.approve(ALICE, SPENDER, UINT256_MAX - 1)
    erc20.increase_allowance(ALICE, SPENDER, 10)
    assert erc20.allowance(ALICE, SPENDER) == UINT256_MAX


def test_serialization_round_trip(erc20):
    erc20.approve(ALICE, SPENDER, UINT256_MAX)
    restored = ERC20Token.from_dict(erc20.to_dict())
    assert restored.address == erc20.address
    assert restored.balance_of(ALICE) == 1_000
    assert restored.allowance(ALICE, SPENDER) == UINT256_MAX
    assert restored.owner == erc20.owner


class TestERC20Factory:
    def test_create_token_mints_initial_supply(self):
        factory = ERC20Factory()
        token = factory.create_token(OWNER, "Test", "TST", initial_supply=500, mint_to=ALICE)
        assert token.balance_of(ALICE) == 500
        assert factory.get_token(token.address) is token
        assert factory.get_token(token.address.upper().replace("0X", "0x")) is token
        assert factory.list_tokens()[0]["symbol"] == "TST"

    def test_addresses_are_unique(self):
        factory = ERC20Factory()
        first = factory.create_token(OWNER, "Test", "TST")
        second = factory.create_token(OWNER, "Test", "TST")
        assert first.address != second.address

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": "", "symbol": "TST"},
            {"name": "Test", "symbol": ""},
            {"name": "Test", "symbol": "TST", "decimals": 19},
            {"name": "Test", "symbol": "TST", "initial_supply": 11, "max_supply": 10},
        ],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(TokenError):
            ERC20Factory().create_token(OWNER, **kwargs)


def test_events_use_attached_clock():
    clock = SimulatedClock(start=1_000)
    token = ERC20Token(name="Timed", symbol="TMD", owner=OWNER, clock=clock)
    token.mint(OWNER, ALICE, 5)
    assert token.events[-1].timestamp == 1_000

    clock.set_next_timestamp(2_000)
    clock.mine()
    token.transfer(ALICE, BOB, 1)
    assert token.events[-1].timestamp == 2_000
    assert "clock" not in token.to_dict()
