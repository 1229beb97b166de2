from models.user import User
from models.item import Item
from models.rental import Rental, RentalStatus
from models.evidence import EvidenceRecord, EvidencePhase, EvidenceKind, PartyRole
from models.review import ItemReview, PartyReview
