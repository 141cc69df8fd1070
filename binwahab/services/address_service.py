from sqlalchemy.orm import Session

from binwahab.core.exceptions import NotFoundException
from binwahab.models.users import Address, User
from binwahab.schemas.ecommerce import AddressBase, AddressCreate, ShippingInfo


# -------------------------------
# ADDRESS SERVICES
# -------------------------------
class AddressService:

    @staticmethod
    def list(db: Session, user: User):
        return (
            db.query(Address)
            .filter(Address.user_id == user.id)
            .order_by(Address.is_default.desc(), Address.id.desc())
            .all()
        )

    @staticmethod
    def _build(user: User, data: AddressBase, is_default: bool) -> Address:
        address = Address(user_id=user.id, is_default=is_default, **data.model_dump(exclude={"is_default"}))
        if not address.full_name:
            address.full_name = user.name
        return address

    @staticmethod
    def create(db: Session, user: User, data: AddressCreate) -> Address:
        has_any = db.query(Address.id).filter(Address.user_id == user.id).first() is not None

        # First address becomes the default
        is_default = data.is_default or not has_any
        if is_default and has_any:
            db.query(Address).filter(
                Address.user_id == user.id, Address.is_default.is_(True)
            ).update({Address.is_default: False}, synchronize_session=False)

        address = AddressService._build(user, data, is_default)
        db.add(address)
        db.commit()
        db.refresh(address)
        return address

    @staticmethod
    def get_owned(db: Session, user: User, address_id: int) -> Address:
        address = (
            db.query(Address)
            .filter(Address.id == address_id, Address.user_id == user.id)
            .first()
        )
        if not address:
            raise NotFoundException("Address not found")
        return address

    @staticmethod
    def resolve_for_order(db: Session, user: User, shipping: ShippingInfo) -> Address:
        """Owned address by id, or a new one staged in the caller's transaction."""
        if shipping.address_id is not None:
            return AddressService.get_owned(db, user, shipping.address_id)

        has_any = db.query(Address.id).filter(Address.user_id == user.id).first() is not None
        address = AddressService._build(user, shipping.address, is_default=not has_any)
        db.add(address)
        db.flush()
        return address
