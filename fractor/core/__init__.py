"""fractor.core — public API for all core types."""

from fractor.core.amounts import (
    NonNegativeAmount as NonNegativeAmount,
)
from fractor.core.amounts import (
    PositiveAmount as PositiveAmount,
)
from fractor.core.amounts import (
    mul_div as mul_div,
)
from fractor.core.clock import (
    Clock as Clock,
)
from fractor.core.clock import (
    ManualClock as ManualClock,
)
from fractor.core.clock import (
    SystemClock as SystemClock,
)
from fractor.core.errors import (
    AllowanceLowError as AllowanceLowError,
)
from fractor.core.errors import (
    BadStatusError as BadStatusError,
)
from fractor.core.errors import (
    EscrowError as EscrowError,
)
from fractor.core.errors import (
    FieldViolation as FieldViolation,
)
from fractor.core.errors import (
    FractorError as FractorError,
)
from fractor.core.errors import (
    LedgerError as LedgerError,
)
from fractor.core.errors import (
    NoCommitError as NoCommitError,
)
from fractor.core.errors import (
    NothingToClaimError as NothingToClaimError,
)
from fractor.core.errors import (
    OversubscribedError as OversubscribedError,
)
from fractor.core.errors import (
    UnauthorizedError as UnauthorizedError,
)
from fractor.core.errors import (
    ValidationError as ValidationError,
)
from fractor.core.errors import (
    WrongIroStageError as WrongIroStageError,
)
from fractor.core.identifiers import (
    Address as Address,
)
from fractor.core.identifiers import (
    derive_address as derive_address,
)
from fractor.core.result import (
    Err as Err,
)
from fractor.core.result import (
    Ok as Ok,
)
from fractor.core.result import (
    Result as Result,
)
from fractor.core.result import (
    sequence as sequence,
)
from fractor.core.result import (
    unwrap as unwrap,
)
from fractor.core.serialization import (
    canonical_bytes as canonical_bytes,
)
from fractor.core.serialization import (
    content_hash as content_hash,
)
from fractor.core.types import (
    NonEmptyStr as NonEmptyStr,
)
from fractor.core.types import (
    UtcDatetime as UtcDatetime,
)
