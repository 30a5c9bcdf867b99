"""Unit tests for seasonal campaign distribution"""

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from credit_engine.app.use_cases.admin import DistributeCampaign
from credit_engine.app.use_cases.admin.seasonal_campaigns import grant_message, grant_per_tenant
from credit_engine.app.use_cases.credits import CreateCampaignCommandDTO, DistributeCampaignCommandDTO
from credit_engine.domain.base import utc_now
from credit_engine.domain.seasonal_campaign import (
    AllocationStatus,
    CampaignCreditType,
    CampaignStatus,
    DistributionMethod,
    SeasonalCampaign,
)


def make_campaign(**fields) -> SeasonalCampaign:
    values = dict(
        id=7,
        campaign_name="Spring Boost",
        credit_type=CampaignCreditType.PROMOTIONAL,
        total_credits=Decimal("100"),
        expires_at=utc_now() + timedelta(days=30),
        target_tenant_ids=["tenant_a", "tenant_b"],
        status=CampaignStatus.PENDING,
    )
    values.update(fields)
    return SeasonalCampaign(**values)


@pytest.fixture
def campaign():
    return make_campaign(credits_per_tenant=Decimal("10"))


@pytest.fixture
def mock_campaign_repo(campaign):
    repo = MagicMock()
    repo.get_by_id = AsyncMock(return_value=campaign)
    repo.save = AsyncMock(side_effect=lambda c: c)
    repo.add_allocation = AsyncMock(side_effect=lambda a: a)
    return repo


@pytest.fixture
def mock_entity_repo():
    repo = MagicMock()
    repo.list_tenant_ids = AsyncMock(return_value=["tenant_a", "tenant_b"])
    return repo


@pytest.fixture
def mock_runner():
    runner = MagicMock()
    runner.run = AsyncMock()
    return runner


@pytest.fixture
def distribute(mock_uow, mock_runner, mock_campaign_repo, mock_entity_repo):
    return DistributeCampaign(mock_uow, mock_runner, MagicMock(), mock_campaign_repo, mock_entity_repo)


class TestGrantPerTenant:

    def test_equal_split_rounds_down(self):
        assert grant_per_tenant(make_campaign(), 3) == Decimal("33.3333")

    def test_fixed_gives_every_tenant_the_total(self):
        assert grant_per_tenant(make_campaign(distribution_method=DistributionMethod.FIXED), 3) == Decimal("100")

    def test_per_tenant_amount_wins(self):
        assert grant_per_tenant(make_campaign(credits_per_tenant=Decimal("5")), 3) == Decimal("5")

    def test_message_template(self):
        message = grant_message("{credit_amount} from {campaign_name}!", "Spring Boost", Decimal("5.0000"), utc_now())

        assert message == "5.0000 from Spring Boost!"


@pytest.mark.asyncio
class TestDistributeCampaign:

    async def test_failed_tenant_is_recorded_and_others_continue(
        self, distribute, mock_uow, mock_runner, mock_campaign_repo, campaign
    ):
        """
        Given a campaign for two tenants whose second grant fails
        When the campaign is distributed
        Then the first tenant counts as distributed, the second is recorded
        as a failed allocation and the campaign ends PARTIAL_SUCCESS
        """
        # Arrange
        mock_runner.run = AsyncMock(side_effect=[None, RuntimeError("database unavailable")])

        # Act
        result = await distribute.execute(DistributeCampaignCommandDTO(campaign_id=7))

        # Assert
        assert result.is_ok(), result.error
        assert result.value.status == CampaignStatus.PARTIAL_SUCCESS
        assert result.value.distributed_count == 1
        assert result.value.failed_tenants == [{"tenant_id": "tenant_b", "error": "database unavailable"}]
        assert [call.args[0] for call in mock_runner.run.await_args_list] == [["tenant_a:*"], ["tenant_b:*"]]

        failed = mock_campaign_repo.add_allocation.await_args.args[0]
        assert failed.status == AllocationStatus.FAILED
        assert failed.tenant_id == "tenant_b"
        assert campaign.failed_count == 1

    async def test_every_grant_failing_marks_campaign_failed(self, distribute, mock_runner):
        mock_runner.run = AsyncMock(side_effect=RuntimeError("down"))

        result = await distribute.execute(DistributeCampaignCommandDTO(campaign_id=7))

        assert result.value.status == CampaignStatus.FAILED
        assert result.value.credits_distributed == Decimal("0")

    async def test_only_pending_campaigns_are_distributed(self, distribute, mock_uow, mock_runner, campaign):
        # Arrange
        campaign.status = CampaignStatus.COMPLETED

        # Act
        result = await distribute.execute(DistributeCampaignCommandDTO(campaign_id=7))

        # Assert
        assert result.is_err()
        assert result.error.code == "INVALID_CAMPAIGN_STATE"
        mock_runner.run.assert_not_awaited()
        mock_uow.rollback.assert_awaited_once()

    async def test_split_too_small_for_every_tenant(self, distribute, mock_runner, mock_campaign_repo):
        mock_campaign_repo.get_by_id = AsyncMock(return_value=make_campaign(total_credits=Decimal("0.0001")))

        result = await distribute.execute(DistributeCampaignCommandDTO(campaign_id=7))

        assert result.error.code == "INVALID_CAMPAIGN_STATE"
        mock_runner.run.assert_not_awaited()


class TestCreateCampaignCommand:

    def test_needs_targets(self):
        with pytest.raises(ValueError):
            CreateCampaignCommandDTO(
                campaign_name="Spring Boost",
                total_credits=Decimal("100"),
                expires_at=utc_now() + timedelta(days=1),
            )

    def test_aware_expiry_is_stored_as_naive_utc(self):
        from datetime import datetime, timezone

        command = CreateCampaignCommandDTO(
            campaign_name="Spring Boost",
            total_credits=Decimal("100"),
            expires_at=datetime(2030, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2))),
            target_all_tenants=True,
        )

        assert command.expires_at == datetime(2030, 1, 1, 10, 0)
