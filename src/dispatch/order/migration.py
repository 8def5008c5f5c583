"""Legacy link backfill: turn split notes into explicit parent links."""

import structlog
from protean import handle
from protean.fields import Boolean
from protean.utils.globals import current_domain

from dispatch.completion.rollup import find_order, unlinked_divisions
from dispatch.domain import dispatch
from dispatch.order.order import Order
from dispatch.order.provenance import parse_parent_reference

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="Order")
class LinkLegacyDivisions:
    dry_run = Boolean(default=False)


@dispatch.command_handler(part_of=Order)
class LinkLegacyDivisionsHandler:
    @handle(LinkLegacyDivisions)
    def link_legacy_divisions(self, command):
        """Returns the ids of the divisions that were (or would be) linked."""
        repo = current_domain.repository_for(Order)
        linked = []
        for order in unlinked_divisions():
            reference = parse_parent_reference(order.order_details)

            # Originals are usually deleted; the reference is kept as-is then
            parent = find_order(reference)
            parent_id = str(parent.id) if parent is not None else reference
            parent_code = parent.order_code if parent is not None else None
            if parent_id == str(order.id):
                logger.warning("Split note points at the order itself", order_id=str(order.id))
                continue

            if not command.dry_run:
                order.link_parent(parent_id, parent_code)
                repo.add(order)
            linked.append(str(order.id))

        logger.info("Legacy divisions linked", count=len(linked), dry_run=bool(command.dry_run))
        return linked
