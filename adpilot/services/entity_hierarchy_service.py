"""
Entity hierarchy service

Names, statuses and parent links for campaigns, ad groups, keywords and
ads, so cached metrics can be labelled and filtered without a live call.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from adpilot.models.entity_hierarchy import EntityHierarchy
from adpilot.models.metrics import ENTITY_TYPES
from adpilot.services.metrics_service import get_parent_entity_type
from adpilot.utils.logger import log


class EntityHierarchyService:

    def __init__(self, db: Session):
        self.db = db

    def get_entity(self, customer_id: str, entity_type: str, entity_id: str) -> Optional[EntityHierarchy]:
        return self.db.query(EntityHierarchy).filter(
            EntityHierarchy.customer_id == customer_id,
            EntityHierarchy.entity_type == entity_type,
            EntityHierarchy.entity_id == str(entity_id),
        ).first()

    def get_entities(self, customer_id: str, entity_type: str, parent_entity_id: Optional[str] = None,
                     status: Optional[str] = None) -> List[EntityHierarchy]:
        query = self.db.query(EntityHierarchy).filter(
            EntityHierarchy.customer_id == customer_id,
            EntityHierarchy.entity_type == entity_type,
        )
        if parent_entity_id:
            query = query.filter(EntityHierarchy.parent_entity_id == str(parent_entity_id))
        if status:
            query = query.filter(EntityHierarchy.status == status)
        return query.order_by(EntityHierarchy.entity_name).all()

    def get_entity_name(self, customer_id: str, entity_type: str, entity_id: str) -> Optional[str]:
        entity = self.get_entity(customer_id, entity_type, entity_id)
        return entity.entity_name if entity else None

    def _apply(self, customer_id: str, data: Dict, account_id: Optional[int]) -> EntityHierarchy:
        entity_type = data["entity_type"]
        entity = self.get_entity(customer_id, entity_type, data["entity_id"])
        if not entity:
            entity = EntityHierarchy(
                customer_id=customer_id,
                entity_type=entity_type,
                entity_id=str(data["entity_id"]),
            )
            self.db.add(entity)

        parent_id = data.get("parent_entity_id")
        entity.account_id = account_id if account_id is not None else entity.account_id
        entity.entity_name = data.get("entity_name") or entity.entity_name
        entity.status = data.get("status") or entity.status
        entity.parent_entity_type = get_parent_entity_type(entity_type) if parent_id else None
        entity.parent_entity_id = str(parent_id) if parent_id else None

        if entity_type == "CAMPAIGN":
            entity.campaign_id = entity.entity_id
        elif data.get("campaign_id"):
            entity.campaign_id = str(data["campaign_id"])
        elif entity_type == "AD_GROUP" and parent_id:
            entity.campaign_id = str(parent_id)

        if entity_type == "AD_GROUP":
            entity.ad_group_id = entity.entity_id
        elif data.get("ad_group_id"):
            entity.ad_group_id = str(data["ad_group_id"])
        elif entity_type in ("KEYWORD", "AD") and parent_id:
            entity.ad_group_id = str(parent_id)

        entity.last_updated = datetime.utcnow()
        return entity

    def upsert_entity(self, customer_id: str, data: Dict, account_id: Optional[int] = None) -> EntityHierarchy:
        """
        data: {entity_type, entity_id, entity_name?, status?, parent_entity_id?,
               campaign_id?, ad_group_id?}
        """
        entity = self._apply(customer_id, data, account_id)
        self.db.commit()
        return entity

    def batch_upsert_entities(self, customer_id: str, entities: Iterable[Dict],
                              account_id: Optional[int] = None) -> int:
        count = 0
        seen = set()
        for data in entities:
            key = (data["entity_type"], str(data["entity_id"]))
            if key in seen:
                continue
            seen.add(key)
            self._apply(customer_id, data, account_id)
            # Rows added in this batch must be visible to later lookups
            self.db.flush()
            count += 1
        self.db.commit()
        return count

    def get_campaign_hierarchy(self, customer_id: str, campaign_id: str) -> Optional[Dict]:
        campaign = self.get_entity(customer_id, "CAMPAIGN", campaign_id)
        if not campaign:
            return None

        keywords_by_ad_group: Dict[str, List[Dict]] = {}
        for keyword in self.db.query(EntityHierarchy).filter(
            EntityHierarchy.customer_id == customer_id,
            EntityHierarchy.entity_type == "KEYWORD",
            EntityHierarchy.campaign_id == str(campaign_id),
        ).order_by(EntityHierarchy.entity_name).all():
            keywords_by_ad_group.setdefault(keyword.ad_group_id, []).append(keyword.to_dict())

        ad_groups = [
            {**ad_group.to_dict(), "keywords": keywords_by_ad_group.get(ad_group.entity_id, [])}
            for ad_group in self.get_entities(customer_id, "AD_GROUP", parent_entity_id=campaign_id)
        ]
        return {"campaign": campaign.to_dict(), "ad_groups": ad_groups}

    def delete_removed_entities(self, customer_id: str, entity_type: str, active_ids: Iterable[str]) -> int:
        """Drop entities no longer returned by Google Ads"""
        active = [str(i) for i in active_ids]
        query = self.db.query(EntityHierarchy).filter(
            EntityHierarchy.customer_id == customer_id,
            EntityHierarchy.entity_type == entity_type,
        )
        if active:
            query = query.filter(EntityHierarchy.entity_id.notin_(active))
        deleted = query.delete(synchronize_session=False)
        self.db.commit()
        if deleted:
            log.info(f"Removed {deleted} stale {entity_type} entities for {customer_id}")
        return deleted

    def get_entity_counts(self, customer_id: str) -> Dict[str, int]:
        counts = {entity_type: 0 for entity_type in ENTITY_TYPES}
        rows = self.db.query(EntityHierarchy.entity_type, func.count(EntityHierarchy.id)).filter(
            EntityHierarchy.customer_id == customer_id
        ).group_by(EntityHierarchy.entity_type).all()
        for entity_type, count in rows:
            counts[entity_type] = count
        return counts
