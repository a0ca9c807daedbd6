from .config import (
    DispatchPolicy as DispatchPolicy,
    FusionConfig as FusionConfig,
    GatewayConfig as GatewayConfig,
    load_gateway_config as load_gateway_config,
)
from .dispatcher import ProviderDispatcher as ProviderDispatcher
from .errors import (
    AllProvidersFailed as AllProvidersFailed,
    ConfigError as ConfigError,
    ConsensusError as ConsensusError,
    NoSuccessfulProvider as NoSuccessfulProvider,
    ProviderError as ProviderError,
    ProviderTimeout as ProviderTimeout,
    ProviderUnavailable as ProviderUnavailable,
)
from .fusion import ConsensusFuser as ConsensusFuser
from .gateway import ConsensusGateway as ConsensusGateway
from .history import ConversationHistory as ConversationHistory
from .provider_spi import (
    AsyncProviderSPI as AsyncProviderSPI,
    ProviderSPI as ProviderSPI,
    Task as Task,
    TaskOptions as TaskOptions,
)
from .results import (
    ConsensusResult as ConsensusResult,
    FailureReason as FailureReason,
    ProviderFailure as ProviderFailure,
    ProviderResult as ProviderResult,
    ProviderSuccess as ProviderSuccess,
)
from .session_queue import SessionSerializer as SessionSerializer

__version__ = "0.1.0"
