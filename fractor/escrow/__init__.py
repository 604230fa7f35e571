"""fractor.escrow — listings, funding and buyout rounds, directory."""

from fractor.escrow.buyout import BuyoutRound as BuyoutRound
from fractor.escrow.buyout import offer_target as offer_target
from fractor.escrow.directory import Directory as Directory
from fractor.escrow.directory import TemplateId as TemplateId
from fractor.escrow.directory import TemplateKind as TemplateKind
from fractor.escrow.directory import TemplateRegistry as TemplateRegistry
from fractor.escrow.directory import default_templates as default_templates
from fractor.escrow.events import DomainEvent as DomainEvent
from fractor.escrow.funding import FundingRound as FundingRound
from fractor.escrow.lifecycle import BUYOUT_TRANSITIONS as BUYOUT_TRANSITIONS
from fractor.escrow.lifecycle import FUNDING_TRANSITIONS as FUNDING_TRANSITIONS
from fractor.escrow.lifecycle import LISTING_TRANSITIONS as LISTING_TRANSITIONS
from fractor.escrow.lifecycle import BuyoutStatus as BuyoutStatus
from fractor.escrow.lifecycle import FundingStatus as FundingStatus
from fractor.escrow.lifecycle import ListingStatus as ListingStatus
from fractor.escrow.lifecycle import check_transition as check_transition
from fractor.escrow.listing import Listing as Listing
from fractor.escrow.roles import Capabilities as Capabilities
from fractor.escrow.roles import Role as Role
