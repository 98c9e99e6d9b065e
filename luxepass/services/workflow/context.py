from dataclasses import dataclass
from datetime import date
from typing import Any

from luxepass.services.catalog import Catalog
from luxepass.services.messaging.message_composer import MessageComposer
from luxepass.services.sessions import SessionRecord


@dataclass(frozen=True)
class StepContext:
    """Everything a state handler may read besides the session itself."""

    catalog: Catalog
    composer: MessageComposer
    today: date
    now_ms: int
    concierge_min_amount: int
    concierge_max_amount: int
    referral_link: str

    def render(self, key: str, session: SessionRecord, **kwargs: Any) -> str:
        return self.composer.render(key, identifier=session.identifier, **kwargs)
