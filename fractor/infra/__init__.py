"""fractor.infra — configuration, event-bus protocol and adapters."""

from fractor.infra.config import ALL_TOPICS as ALL_TOPICS
from fractor.infra.config import BUYOUT_PERIOD as BUYOUT_PERIOD
from fractor.infra.config import DEFAULT_CONFIG as DEFAULT_CONFIG
from fractor.infra.config import FUNDING_PERIOD as FUNDING_PERIOD
from fractor.infra.config import TOPIC_BUYOUTS as TOPIC_BUYOUTS
from fractor.infra.config import TOPIC_FUNDING as TOPIC_FUNDING
from fractor.infra.config import TOPIC_LISTINGS as TOPIC_LISTINGS
from fractor.infra.config import TOPIC_TITLES as TOPIC_TITLES
from fractor.infra.config import EscrowConfig as EscrowConfig
from fractor.infra.memory_adapter import InMemoryEventBus as InMemoryEventBus
from fractor.infra.protocols import EventBus as EventBus
from fractor.infra.protocols import PersistenceError as PersistenceError
