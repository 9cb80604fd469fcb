from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CustomerProfile(db.Model):
    """Purchaser profile data read by the pipeline (display name, fallback phone)."""
    __tablename__ = "customer_profiles"

    user_id = db.Column(db.String(64), primary_key=True)
    display_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "email": self.email,
            "phone": self.phone,
        }


class WishlistItem(db.Model):
    """Public wishlist entry; matched against submitted products after fulfillment."""
    __tablename__ = "wishlist_items"
    __table_args__ = (
        db.Index("ix_wishlist_items_owner_product", "owner_user_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_user_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.String(32), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=True)
    is_public = db.Column(db.Boolean, nullable=False, default=True)
    purchased_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "product_id": self.product_id,
            "title": self.title,
            "is_public": self.is_public,
            "purchased_at": to_utc_z(self.purchased_at),
        }
