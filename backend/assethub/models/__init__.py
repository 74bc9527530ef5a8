from .assets import Asset, AssetOperation
from .consumables import Consumable, ConsumableOperation, ConsumableAlert
from .approvals import ApprovalRequest, ApprovalCcRecipient
from .inventory import ConsumableInventoryTask, ConsumableInventoryEntry
from .settings import ActionConfig
from .outbox import OutboxEvent

__all__ = [
    'Asset', 'AssetOperation',
    'Consumable', 'ConsumableOperation', 'ConsumableAlert',
    'ApprovalRequest', 'ApprovalCcRecipient',
    'ConsumableInventoryTask', 'ConsumableInventoryEntry',
    'ActionConfig',
    'OutboxEvent',
]
