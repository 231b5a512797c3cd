"""Internal constants shared across the library."""

MEMORY_URL = "memory://"
USER_AGENT = "fleetsync/0.3"

#: Key under which the session blob is stored in both storage tiers.
SESSION_STORAGE_KEY = "adminAuth"

DURABLE_SESSION_TTL_S: float = 24 * 3600
TAB_SESSION_TTL_S: float = 8 * 3600

# ------------------------------------------------------------------
# Collection paths in the realtime database tree
# ------------------------------------------------------------------

VEHICLES = "vehicles"
TRIPS = "trips"
NOTIFICATIONS = "notifications"
STATS = "stats"
CUSTOMERS = "customers"
FUEL_RECORDS = "fuelRecords"
FUEL_PURCHASES = "fuelPurchases"
MAINTENANCE_SCHEDULE = "maintenanceSchedule"
SERVICE_HISTORY = "serviceHistory"
PARTS_INVENTORY = "partsInventory"
TRANSPORT_SYSTEM = "transportSystem"
TRANSPORT_HISTORY = "transportHistory"
INVOICES = "invoices"
CONTRACTS = "contracts"
VEHICLE_LOCATIONS = "vehicleLocations"
VERIFICATIONS = "verifications"
OTP_ATTEMPTS = "settings/otpAttempts"

#: Collections mirrored live by the dashboard.
TRACKED_COLLECTIONS: tuple[str, ...] = (
    VEHICLES,
    TRIPS,
    FUEL_RECORDS,
    FUEL_PURCHASES,
    MAINTENANCE_SCHEDULE,
    SERVICE_HISTORY,
    PARTS_INVENTORY,
    NOTIFICATIONS,
    TRANSPORT_HISTORY,
)

# Characters the realtime database forbids in keys.
FORBIDDEN_KEY_CHARS = frozenset(".#$[]/")

# ------------------------------------------------------------------
# Stock thresholds (percentage of minimum stock)
# ------------------------------------------------------------------

CRITICAL_STOCK_PCT = 100.0
LOW_STOCK_PCT = 150.0
