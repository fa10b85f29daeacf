import pytest

from tokenlock.core.chain import LocalChain
from tokenlock.core.clock import SimulatedClock
from tokenlock.core.contracts.erc20 import UINT256_MAX, ERC20Token
from tokenlock.core.contracts.timelock import TimelockVault
from tokenlock.core.units import parse_ether

GENESIS_TIME = 1_700_000_000

OWNER = "0x6b3ebd3430a7672ba34d4266334eb35f6071c963"
USER = "0x" + "a1" * 20
OTHER = "0x" + "b2" * 20


@pytest.fixture
def owner():
    return OWNER


@pytest.fixture
def user():
    return USER


@pytest.fixture
def other():
    return OTHER


@pytest.fixture
def clock():
    """Simulated clock that only mines when told to."""
    return SimulatedClock(start=GENESIS_TIME, automine=False)


@pytest.fixture
def token():
    token = ERC20Token(name="Uniswap", symbol="UNI", owner=OWNER)
    token.mint(OWNER, OWNER, parse_ether(1_000))
    return token


@pytest.fixture
def vault(token, clock):
    return TimelockVault(token=token, clock=clock)


@pytest.fixture
def funded_user(token, vault):
    """USER holds 10 tokens and has approved the vault for unlimited pulls."""
    token.transfer(OWNER, USER, parse_ether(10))
    token.approve(USER, vault.address, UINT256_MAX)
    return USER


@pytest.fixture
def chain():
    """Local chain with a deployed token and vault, automine off."""
    chain = LocalChain(SimulatedClock(start=GENESIS_TIME))
    token = chain.deploy_token(OWNER, "Uniswap", "UNI", initial_supply=parse_ether(1_000))
    chain.deploy_vault(OWNER, token.address)
    chain.clock.automine = False
    return chain
