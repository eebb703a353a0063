"""
Sponsorship pool tests.

Unit tests for the share accounting plus the game-level sponsor / redeem
flows through a wired certificate registry.

Run with: pytest tests/test_sponsorship.py -v
"""

import pytest

from daovsdao.core import ZERO_ADDRESS, parse_ether
from daovsdao.errors import AuthorizationError, BoundsError, InvariantViolation, StateError
from daovsdao.events import Sponsored, SponsorshipRedeemed, Transfer
from daovsdao.grid import Coords
from daovsdao.registry import Player
from daovsdao.sponsorship import SponsorshipLedger

from addresses import NOBODY, OWNER, USER1, USER2, USER3


# =============================================================================
# POOL ACCOUNTING
# =============================================================================


class TestSponsorshipLedger:
    """Share minting and redemption against a bare player record."""

    @pytest.fixture
    def player(self):
        return Player(identity=USER1, coords=Coords(0, 0, 0))

    @pytest.fixture
    def pools(self):
        return SponsorshipLedger()

    def test_first_deposit_mints_one_to_one(self, pools, player):
        assert pools.deposit(player, 1000) == 1000
        assert pools.shares_of(USER1) == 1000
        assert player.sponsorships == 1000

    def test_later_deposit_priced_on_pool_value(self, pools, player):
        pools.deposit(player, 1000)
        player.sponsorships = 800  # slashed
        assert pools.deposit(player, 400) == 500
        assert pools.shares_of(USER1) == 1500
        assert player.sponsorships == 1200

    def test_redeem_pro_rata(self, pools, player):
        pools.deposit(player, 1000)
        player.sponsorships = 800
        assert pools.redeem(player, 250) == 200
        assert pools.shares_of(USER1) == 750
        assert player.sponsorships == 600

    def test_redeem_rounds_down(self, pools, player):
        pools.deposit(player, 3)
        player.sponsorships = 2
        assert pools.redeem(player, 1) == 0
        assert pools.redeem(player, 2) == 2

    def test_full_redeem_removes_pool(self, pools, player):
        pools.deposit(player, 1000)
        pools.redeem(player, 1000)
        assert pools.pool(USER1) is None
        assert pools.pools() == []
        assert not pools.accepts_credit(player)

    def test_zero_amount_rejected(self, pools, player):
        with pytest.raises(BoundsError, match="Amount must be greater than 0"):
            pools.deposit(player, 0)

    def test_zero_shares_rejected(self, pools, player):
        pools.deposit(player, 10)
        with pytest.raises(BoundsError, match="Cannot reimburse 0 shares"):
            pools.redeem(player, 0)

    def test_over_redeem_rejected(self, pools, player):
        pools.deposit(player, 10)
        with pytest.raises(InvariantViolation, match="Insufficient sponsorship shares"):
            pools.redeem(player, 11)

    def test_drained_pool_refuses_deposits(self, pools, player):
        pools.deposit(player, 10)
        player.sponsorships = 0
        with pytest.raises(StateError, match="Sponsorship pool has no value"):
            pools.deposit(player, 5)

    def test_deposit_worth_no_shares_rejected(self, pools, player):
        pools.deposit(player, 10)
        pools.credit(player, 90)
        with pytest.raises(BoundsError, match="Sponsorship too small for one share"):
            pools.deposit(player, 9)
        assert pools.shares_of(USER1) == 10
        assert player.sponsorships == 100
        assert pools.deposit(player, 10) == 1

    def test_slash_keeps_shares(self, pools, player):
        pools.deposit(player, 1000)
        assert SponsorshipLedger.slash(player, 20) == 200
        assert player.sponsorships == 800
        assert pools.shares_of(USER1) == 1000

    def test_credit_requires_pool(self, pools, player):
        with pytest.raises(StateError, match="No sponsorship pool to credit"):
            pools.credit(player, 5)
        pools.deposit(player, 10)
        pools.credit(player, 5)
        assert player.sponsorships == 15


# =============================================================================
# GAME FLOWS
# =============================================================================


@pytest.fixture
def funded(three_players, clock):
    clock.set(1000)
    three_players.transfer(OWNER, USER1, parse_ether("0.25"))
    three_players.transfer(OWNER, USER2, parse_ether("0.50"))
    three_players.transfer(OWNER, USER3, parse_ether("0.25"))
    return three_players


class TestSponsor:
    """Tests for DaoVsDao.sponsor."""

    def test_issues_certificate(self, funded, certificates):
        receipt = funded.sponsor(USER3, USER1, parse_ether("0.10"))
        assert receipt.result == 1
        event = receipt.first(Sponsored)
        assert event.sponsor == USER3
        assert event.beneficiary == USER1
        assert event.shares == parse_ether("0.10")
        assert event.certificate_id == 1
        assert certificates.owner_of(1) == USER3
        data = certificates.certificate_data(1)
        assert data.receiver == USER1
        assert data.shares == parse_ether("0.10")

    def test_value_leaves_circulation(self, funded, certificates):
        supply = funded.total_supply
        receipt = funded.sponsor(USER3, USER1, parse_ether("0.10"))
        assert funded.total_supply == supply - parse_ether("0.10")
        assert funded.balance_of(USER3) == parse_ether("0.15")
        assert funded.get_player_data(USER1).sponsorships == parse_ether("0.10")
        burns = [t for t in receipt.events_of(Transfer) if t.recipient == ZERO_ADDRESS]
        assert [(t.sender, t.amount) for t in burns] == [(USER3, parse_ether("0.10"))]

    def test_sponsorship_counts_toward_worth(self, funded, certificates):
        # user1 0.25 + 0.30 sponsored now outweighs user2's 0.50
        funded.sponsor(USER3, USER1, parse_ether("0.25"))
        funded.sponsor(USER2, USER1, parse_ether("0.05"))
        with pytest.raises(StateError, match="User has higher worth"):
            funded.swap(USER2, (0, 0, 0))

    def test_sponsor_settles_accrual_first(self, funded, certificates, clock):
        clock.set(2000)
        accrued = funded.claimable(USER3)
        assert accrued == 7927447995941
        funded.sponsor(USER3, USER1, parse_ether("0.25"))
        assert funded.balance_of(USER3) == accrued
        assert funded.claimable(USER3) == 0

    def test_non_player_may_sponsor(self, funded, certificates):
        funded.transfer(USER2, NOBODY, parse_ether("0.001"))
        receipt = funded.sponsor(NOBODY, USER2, parse_ether("0.001"))
        assert certificates.owner_of(receipt.result) == NOBODY

    def test_repriced_after_slash(self, funded, certificates):
        funded.sponsor(USER3, USER1, parse_ether("0.10"))
        funded.swap(USER2, (0, 0, 0))
        # pool now holds 0.08 for 0.10 shares
        receipt = funded.sponsor(USER3, USER1, parse_ether("0.04"))
        assert receipt.first(Sponsored).shares == parse_ether("0.05")
        assert funded.sponsorship_shares(USER1) == parse_ether("0.15")


class TestSponsorRejections:
    """Rejections and their order."""

    def test_zero_amount(self, funded, certificates):
        with pytest.raises(BoundsError, match="Amount must be greater than 0"):
            funded.sponsor(USER3, USER1, 0)

    def test_beneficiary_must_play(self, funded, certificates):
        with pytest.raises(StateError, match="User isn't a player"):
            funded.sponsor(USER3, NOBODY, parse_ether("0.01"))

    def test_insufficient_balance(self, funded, certificates):
        with pytest.raises(StateError, match="Insufficient balance to sponsor"):
            funded.sponsor(USER3, USER1, parse_ether("0.26"))

    def test_balance_checked_before_emitter(self, funded):
        with pytest.raises(StateError, match="Insufficient balance to sponsor"):
            funded.sponsor(USER3, USER1, parse_ether("0.26"))

    def test_emitter_required(self, funded):
        with pytest.raises(StateError, match="Sponsorship certificate emitter not set"):
            funded.sponsor(USER3, USER1, parse_ether("0.01"))
        assert funded.balance_of(USER3) == parse_ether("0.25")

    def test_deposit_below_share_price(self, funded, certificates):
        funded.sponsor(USER3, USER1, 10)
        beneficiary = funded.state.players.lookup_by_identity(USER1)
        funded.state.pools.credit(beneficiary, 90)
        balance = funded.balance_of(USER3)
        with pytest.raises(BoundsError, match="Sponsorship too small for one share"):
            funded.sponsor(USER3, USER1, 9)
        assert funded.balance_of(USER3) == balance
        assert funded.sponsorship_shares(USER1) == 10
        assert certificates.total_certificates == 1

    def test_drained_pool(self, funded, certificates):
        funded.set_slashing_percentage(OWNER, 100)
        funded.sponsor(USER3, USER1, parse_ether("0.10"))
        funded.swap(USER2, (0, 0, 0))
        assert funded.get_player_data(USER1).sponsorships == 0
        with pytest.raises(StateError, match="Sponsorship pool has no value"):
            funded.sponsor(USER3, USER1, parse_ether("0.01"))
        assert certificates.total_certificates == 1


class TestRedeem:
    """Redemption through the certificate registry."""

    @pytest.fixture
    def sponsored(self, funded, certificates):
        funded.sponsor(USER3, USER1, parse_ether("0.10"))
        return funded

    def test_partial_redeem(self, sponsored, certificates):
        receipt = certificates.redeem_certificate(USER3, 1, parse_ether("0.04"))
        assert receipt.result == parse_ether("0.04")
        assert sponsored.balance_of(USER3) == parse_ether("0.19")
        assert sponsored.sponsorship_shares(USER1) == parse_ether("0.06")
        data = certificates.certificate_data(1)
        assert data.redeemed_shares == parse_ether("0.04")
        assert not data.closed

    def test_full_redeem_closes_and_removes_pool(self, sponsored, certificates):
        certificates.redeem_certificate(USER3, 1)
        assert certificates.certificate_data(1).closed
        assert sponsored.sponsorship_shares(USER1) == 0
        assert sponsored.get_player_data(USER1).sponsorships == 0
        assert sponsored.state.pools.pool(USER1) is None
        assert sponsored.balance_of(USER3) == parse_ether("0.25")

    def test_redeem_settles_owner(self, sponsored, certificates, clock):
        clock.set(2000)
        expected = sponsored.balance_of(USER3) + sponsored.claimable(USER3) + parse_ether("0.10")
        certificates.redeem_certificate(USER3, 1)
        assert sponsored.balance_of(USER3) == expected

    def test_game_emits_redeemed(self, sponsored, certificates):
        received = []
        sponsored.bus.subscribe(SponsorshipRedeemed)(received.append)
        certificates.redeem_certificate(USER3, 1)
        assert len(received) == 1
        assert received[0].owner == USER3
        assert received[0].beneficiary == USER1
        assert received[0].amount == parse_ether("0.10")

    def test_drained_pool_redeems_for_nothing(self, funded, certificates):
        funded.set_slashing_percentage(OWNER, 100)
        funded.sponsor(USER3, USER1, parse_ether("0.10"))
        funded.swap(USER2, (0, 0, 0))
        receipt = certificates.redeem_certificate(USER3, 1)
        assert receipt.result == 0
        assert funded.state.pools.pool(USER1) is None
        # an emptied pool starts over at one share per unit
        again = funded.sponsor(USER3, USER1, parse_ether("0.01"))
        assert again.first(Sponsored).shares == parse_ether("0.01")

    def test_only_emitter_may_redeem(self, sponsored):
        with pytest.raises(AuthorizationError, match="Only emitter can revoke sponsor"):
            sponsored.redeem_sponsorship_shares(USER3, USER3, USER1, 1)

    def test_zero_shares(self, sponsored, certificates):
        with pytest.raises(BoundsError, match="Cannot reimburse 0 shares"):
            sponsored.redeem_sponsorship_shares(certificates.address, USER3, USER1, 0)

    def test_more_than_outstanding(self, sponsored, certificates):
        with pytest.raises(InvariantViolation, match="Insufficient sponsorship shares"):
            sponsored.redeem_sponsorship_shares(
                certificates.address, USER3, USER1, parse_ether("0.11")
            )

    def test_unknown_beneficiary(self, sponsored, certificates):
        with pytest.raises(StateError, match="User isn't a player"):
            sponsored.redeem_sponsorship_shares(certificates.address, USER3, NOBODY, 1)
