"""Internal constants shared across the library."""

USER_AGENT = "fleetdesk/1.0"
EMAILJS_SEND_URL = "https://api.emailjs.com/api/v1.0/email/send"
REALTIME_PROTOCOL_VERSION = "1.0.0"

# ------------------------------------------------------------------
# Truck image slots
# ------------------------------------------------------------------

MAIN_IMAGE_SLOT = "main_image"
IMAGE_SLOTS: tuple[str, ...] = (
    MAIN_IMAGE_SLOT,
    "image1",
    "image2",
    "image3",
    "image4",
    "image5",
    "image6",
    "image7",
    "image8",
    "image9",
)

MAX_FEATURES = 20
STORAGE_LIST_LIMIT = 100

# ------------------------------------------------------------------
# Reference lists shown in the truck form
# ------------------------------------------------------------------

CUSTOM_BRAND = "Custom"
TRUCK_BRANDS: tuple[str, ...] = (
    "Volvo",
    "Mercedes-Benz",
    "Scania",
    "MAN",
    "Freightliner",
    "Peterbilt",
    "Kenworth",
    "DAF",
    "IVECO",
    "Renault",
    "Mack",
    "International",
    "Western Star",
    "Hino",
    "Isuzu",
    CUSTOM_BRAND,
)
FUEL_TYPES: tuple[str, ...] = ("Diesel", "Gasoline", "Electric", "Hybrid", "Natural Gas")
TRANSMISSIONS: tuple[str, ...] = ("Automatic", "Manual", "Semi-Automatic")

DEFAULT_FUEL_TYPE = "Diesel"
DEFAULT_TRANSMISSION = "Automatic"
