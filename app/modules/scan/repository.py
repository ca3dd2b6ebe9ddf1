# app/modules/scan/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import and_, func
from typing import List, Optional, Tuple
from datetime import datetime

from app.shared.database.models import (
    InventoryItem, PhotoAsset, ScanResult, ScanSession, ScanTemplate
)

class ScanRepository:
    """Data access for scan sessions, results and the inventory rows they produce"""

    def __init__(self, db: Session):
        self.db = db

    # ==================== SESSIONS ====================

    def get_session(self, session_id: str) -> Optional[ScanSession]:
        return self.db.query(ScanSession).filter(ScanSession.id == session_id).first()

    def get_template(self, template_id: str, tenant_id: str) -> Optional[ScanTemplate]:
        return self.db.query(ScanTemplate).filter(
            and_(
                ScanTemplate.id == template_id,
                ScanTemplate.tenant_id == tenant_id
            )
        ).first()

    def count_active_sessions(self, tenant_id: str) -> int:
        return self.db.query(func.count(ScanSession.id)).filter(
            and_(
                ScanSession.tenant_id == tenant_id,
                ScanSession.status == 'active'
            )
        ).scalar() or 0

    def create_session(
        self,
        tenant_id: str,
        user_id: str,
        template_id: Optional[str],
        device_type: str,
        metadata: Optional[dict]
    ) -> ScanSession:
        session = ScanSession(
            tenant_id=tenant_id,
            user_id=user_id,
            template_id=template_id,
            device_type=device_type,
            status='active',
            meta=metadata or {},
            started_at=datetime.utcnow()
        )
        self.db.add(session)
        self.db.flush()
        return session

    def get_user_sessions(self, tenant_id: str, user_id: str, limit: int) -> List[ScanSession]:
        return self.db.query(ScanSession).filter(
            and_(
                ScanSession.tenant_id == tenant_id,
                ScanSession.user_id == user_id
            )
        ).order_by(ScanSession.started_at.desc()).limit(limit).all()

    def cancel_user_sessions(self, tenant_id: str, user_id: str) -> int:
        return self.db.query(ScanSession).filter(
            and_(
                ScanSession.tenant_id == tenant_id,
                ScanSession.user_id == user_id,
                ScanSession.status == 'active'
            )
        ).update(
            {ScanSession.status: 'cancelled', ScanSession.completed_at: datetime.utcnow()},
            synchronize_session=False
        )

    def cancel_idle_sessions(self, cutoff: datetime) -> Tuple[int, int]:
        """
        Cancel active sessions started before `cutoff` with no result since then

        Returns (cancelled, excluded) where excluded counts the sessions kept
        alive by recent results.
        """
        recent_ids = [
            row[0] for row in self.db.query(ScanResult.session_id).filter(
                ScanResult.created_at >= cutoff
            ).distinct().all()
        ]

        query = self.db.query(ScanSession).filter(
            and_(
                ScanSession.status == 'active',
                ScanSession.started_at < cutoff
            )
        )
        if recent_ids:
            query = query.filter(ScanSession.id.notin_(recent_ids))

        cancelled = query.update(
            {ScanSession.status: 'cancelled', ScanSession.completed_at: datetime.utcnow()},
            synchronize_session=False
        )
        return cancelled, len(recent_ids)

    # ==================== RESULTS ====================

    def get_result(self, session_id: str, barcode: str) -> Optional[ScanResult]:
        return self.db.query(ScanResult).filter(
            and_(
                ScanResult.session_id == session_id,
                ScanResult.barcode == barcode
            )
        ).first()

    def get_result_by_id(self, result_id: str) -> Optional[ScanResult]:
        return self.db.query(ScanResult).filter(ScanResult.id == result_id).first()

    def get_results(self, session_id: str, limit: Optional[int] = None) -> List[ScanResult]:
        query = self.db.query(ScanResult).filter(
            ScanResult.session_id == session_id
        ).order_by(ScanResult.created_at.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def get_committable_results(self, session_id: str) -> List[ScanResult]:
        return self.db.query(ScanResult).filter(
            and_(
                ScanResult.session_id == session_id,
                ScanResult.status != 'duplicate'
            )
        ).order_by(ScanResult.created_at).all()

    def create_result(self, **fields) -> ScanResult:
        result = ScanResult(**fields)
        self.db.add(result)
        self.db.flush()
        return result

    # ==================== INVENTORY ====================

    def find_live_item(self, tenant_id: str, sku: str) -> Optional[InventoryItem]:
        return self.db.query(InventoryItem).filter(
            and_(
                InventoryItem.tenant_id == tenant_id,
                InventoryItem.sku == sku,
                InventoryItem.item_status != 'trashed'
            )
        ).first()

    def find_trashed_item(self, tenant_id: str, sku: str) -> Optional[InventoryItem]:
        return self.db.query(InventoryItem).filter(
            and_(
                InventoryItem.tenant_id == tenant_id,
                InventoryItem.sku == sku,
                InventoryItem.item_status == 'trashed'
            )
        ).order_by(InventoryItem.updated_at.desc()).first()

    def replace_photos(self, item: InventoryItem, urls: List[str]) -> List[PhotoAsset]:
        """Drop every photo of the item and recreate them at positions 0..len-1"""
        self.db.query(PhotoAsset).filter(
            PhotoAsset.inventory_item_id == item.id
        ).delete(synchronize_session=False)
        self.db.flush()

        photos = []
        for index, url in enumerate(urls):
            photo = PhotoAsset(
                tenant_id=item.tenant_id,
                inventory_item_id=item.id,
                url=url,
                position=index,
                alt=f"{item.name} - Image {index + 1}",
                exif_removed=False
            )
            self.db.add(photo)
            photos.append(photo)
        self.db.flush()
        self.db.expire(item, ["photos"])
        return photos

    def get_scanned_items(self, tenant_id: str) -> List[InventoryItem]:
        return self.db.query(InventoryItem).filter(
            and_(
                InventoryItem.tenant_id == tenant_id,
                InventoryItem.enriched_from_barcode.isnot(None),
                InventoryItem.item_status != 'trashed'
            )
        ).all()
