from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session, selectinload

from ride_shared.db.models import PricingConfig, PricingPlan, Promotion


class PricingRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_active_config(self) -> Optional[PricingConfig]:
        """Load the active config with its plans, rules and promotions in one go."""
        return (
            self.session.execute(
                select(PricingConfig)
                .where(PricingConfig.is_active.is_(True))
                .order_by(PricingConfig.created_at.desc())
                .limit(1)
                .options(
                    selectinload(PricingConfig.plans).selectinload(
                        PricingPlan.promotions
                    ),
                    selectinload(PricingConfig.rules),
                    selectinload(PricingConfig.promotions),
                )
            )
            .scalars()
            .first()
        )

    def get_config(self, config_id: str) -> Optional[PricingConfig]:
        return self.session.get(PricingConfig, config_id)

    def activate(self, config_id: str) -> bool:
        """Make ``config_id`` the only active config."""
        config = self.get_config(config_id)
        if not config:
            return False

        self.session.execute(
            update(PricingConfig)
            .where(PricingConfig.id != config_id)
            .values(is_active=False)
        )
        config.is_active = True
        self.session.flush()
        logger.info(f"Pricing config {config_id} activated")
        return True

    def get_promotion(self, promotion_id: str) -> Optional[Promotion]:
        return self.session.get(Promotion, promotion_id)

    def increment_promotion_usage(self, promotion_id: str, now: datetime) -> bool:
        """Count one use if the promotion is live at ``now`` and under its limit."""
        result = self.session.execute(
            update(Promotion)
            .where(
                Promotion.id == promotion_id,
                Promotion.is_active.is_(True),
                Promotion.start_date <= now,
                Promotion.end_date >= now,
                or_(
                    Promotion.usage_limit.is_(None),
                    Promotion.usage_count < Promotion.usage_limit,
                ),
            )
            .values(usage_count=Promotion.usage_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0
