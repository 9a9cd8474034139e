"""
Ledger Configuration
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from coordinator.authorization import AllowAllPolicy, AllowListPolicy, AuthorizationPolicy


class DeliveryPolicy(str, Enum):
    """What happens when the oracle delivers twice for one request id"""
    LAST_WRITE_WINS = "last_write_wins"   # repeat delivery overwrites
    SINGLE_DELIVERY = "single_delivery"   # repeat delivery is rejected


class LedgerConfig(BaseModel):
    """Ledger configuration"""
    delivery_policy: DeliveryPolicy = DeliveryPolicy.LAST_WRITE_WINS
    # None allows every caller
    operator_allow_list: Optional[List[str]] = None
    audit_log_file: Optional[str] = None
    poly_modulus_degree: int = 4096
    plain_modulus: int = 998244353
    key_dir: Optional[str] = None

    def build_authorization_policy(self) -> AuthorizationPolicy:
        if self.operator_allow_list is None:
            return AllowAllPolicy()
        return AllowListPolicy(self.operator_allow_list)


class ServerConfig(BaseModel):
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 8000
    oracle_auto_interval: float = Field(default=2.0, gt=0)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
