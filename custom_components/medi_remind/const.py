"""Constants for the MediRemind integration."""

DOMAIN = "medi_remind"
PLATFORMS = ["sensor"]

# Storage
STORAGE_KEY = DOMAIN
STORAGE_VERSION = 1

# Demo stores outlive entry reloads, keyed by entry id
DATA_DEMO_STORES = f"{DOMAIN}_demo_stores"

COLLECTION_MEDICINES = "medicines"
COLLECTION_CONTACTS = "contacts"
COLLECTION_INTAKE = "intake"
COLLECTION_ALERTS = "alerts"

# Configuration Keys (Entry Level)
CONF_PATIENT = "patient"
CONF_TZ_SENSOR = "tz_sensor" # Global Timezone Sensor for the User
CONF_LANGUAGE = "language"
CONF_NOTIFY_SERVICE = "notify_service"
CONF_CARETAKER_NOTIFY = "caretaker_notify_service"
CONF_VOICE_ENABLED = "voice_enabled"
CONF_TTS_ENTITY = "tts_entity"
CONF_MEDIA_PLAYER = "media_player"
CONF_TTS_RATE_OPTION = "tts_rate_option"
CONF_EARLY_MINUTES = "early_minutes"
CONF_SNOOZE_MINUTES = "snooze_minutes"
CONF_DEMO_MODE = "demo_mode"

# Medicine Properties (Item Level)
CONF_MEDICINE_ID = "medicine_id"
CONF_NAME = "name"
CONF_DOSAGE = "dosage"
CONF_FREQUENCY = "frequency"
CONF_TIME_SLOTS = "time_slots"
CONF_SCHEDULE_DAYS = "days"
CONF_STOCK_DAYS = "stock_days"
CONF_EXPIRY_DATE = "expiry_date"
CONF_FOOD_TIMING = "food_timing"
CONF_INSTRUCTIONS = "instructions"

# Emergency Contact Properties
CONF_CONTACT_ID = "contact_id"
CONF_RELATIONSHIP = "relationship"
CONF_PHONE = "phone_number"
CONF_EMAIL = "email"
CONF_PRIMARY = "is_primary"

# Languages
LANG_HINDI = "hi"
LANG_ENGLISH = "en"

# Frequencies: canonical slot count and default slots (None = any count)
FREQ_ONCE = "once-daily"
FREQ_TWICE = "twice-daily"
FREQ_THRICE = "thrice-daily"
FREQ_FOUR = "four-times"
FREQ_WEEKLY = "weekly"
FREQ_AS_NEEDED = "as-needed"
FREQ_CUSTOM = "custom"

FREQUENCY_SLOTS = {
    FREQ_ONCE: ["09:00"],
    FREQ_TWICE: ["09:00", "21:00"],
    FREQ_THRICE: ["08:00", "14:00", "20:00"],
    FREQ_FOUR: ["07:00", "12:00", "17:00", "22:00"],
    FREQ_WEEKLY: ["09:00"],
    FREQ_AS_NEEDED: None,
    FREQ_CUSTOM: None,
}

# Food timing
FOOD_BEFORE = "before"
FOOD_AFTER = "after"
FOOD_WITH = "with"
FOOD_ANYTIME = "anytime"
FOOD_TIMINGS = [FOOD_BEFORE, FOOD_AFTER, FOOD_WITH, FOOD_ANYTIME]

WEEKDAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

# Reminder timing
TIMING_EARLY = "early"
TIMING_NOW = "now"

CHANNEL_PUSH = "push"
CHANNEL_VOICE = "voice"

# Notification actions
ACTION_TAKEN = "taken"
ACTION_SNOOZE = "snooze"
ACTION_SKIP = "skip"
ACTION_ACKNOWLEDGE = "acknowledge"
ACTION_REPLACE = "replace"
ACTION_PREFIX = "MEDI_REMIND"

# Voice priorities
PRIORITY_LOW = "low"
PRIORITY_MEDIUM = "medium"
PRIORITY_HIGH = "high"

# Defaults
DEFAULT_LANGUAGE = LANG_HINDI
DEFAULT_EARLY_MINUTES = 15
DEFAULT_SNOOZE_MINUTES = 10
DEFAULT_STOCK_DAYS = 30
LOW_STOCK_DAYS = 7
EXPIRY_WARNING_DAYS = 30
DAILY_CHECK_HOUR = 9
HISTORY_LENGTH = 10
NOTIFICATION_ICON = "/local/medi_remind/icon.svg"

# Services
SERVICE_TAKE = "take_medicine"
SERVICE_SKIP = "skip_medicine"
SERVICE_SNOOZE = "snooze_medicine"
SERVICE_ADD = "add_medicine"
SERVICE_UPDATE = "update_medicine"
SERVICE_REMOVE = "remove_medicine"
SERVICE_RESET_STREAK = "reset_streak"
SERVICE_TRIGGER_SOS = "trigger_sos"
SERVICE_RESOLVE_SOS = "resolve_sos"
SERVICE_SCAN_LABEL = "scan_label"

ATTR_ENTRY_ID = "entry_id"
ATTR_MINUTES = "minutes"
ATTR_MESSAGE = "message"
ATTR_ALERT_ID = "alert_id"
ATTR_IMAGE_PATH = "image_path"

# Events and signals
EVENT_MEDICINE_TAKEN = f"{DOMAIN}_medicine_taken"
EVENT_MEDICINE_SKIPPED = f"{DOMAIN}_medicine_skipped"
EVENT_MEDICINE_SNOOZED = f"{DOMAIN}_medicine_snoozed"
EVENT_SOS = f"{DOMAIN}_sos"
EVENT_REPLACEMENT_REQUESTED = f"{DOMAIN}_replacement_requested"
EVENT_NOTIFICATION_ACTION = "mobile_app_notification_action"
SIGNAL_UPDATED = f"{DOMAIN}_updated_{{}}"
SIGNAL_MEDICINE_ADDED = f"{DOMAIN}_medicine_added_{{}}"
SIGNAL_MEDICINE_REMOVED = f"{DOMAIN}_medicine_removed_{{}}"
