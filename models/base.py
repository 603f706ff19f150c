from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class JobKind(str, enum.Enum):
    """Source families, one queue each"""
    AUCTIONS = "auctions"
    LISTINGS = "listings"
    ENERGY_DIAGNOSTICS = "energy_diagnostics"
    FAILING_COMPANIES = "failing_companies"


class OpportunityType(str, enum.Enum):
    """Kind of opportunity stored in the shared table"""
    AUCTION = "auction"
    REAL_ESTATE_LISTING = "real_estate_listing"
    ENERGY_SIEVE = "energy_sieve"
    LIQUIDATION = "liquidation"


class ProcessingStatus(str, enum.Enum):
    """Lifecycle of one job inside the source processor"""
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    ENRICHING = "enriching"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    DEGRADED = "degraded"
    FAILED = "failed"
