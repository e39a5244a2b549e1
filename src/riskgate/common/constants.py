"""Centralized constants for RiskGate."""


# ===== AUDIT & LOGGING =====
class AuditConstants:
    QUEUE_SIZE = 10000
    FLUSH_TIMEOUT_SECONDS = 5.0
    QUEUE_GET_TIMEOUT = 1.0
    HASH_ALGORITHM = "sha256"
    UNRESOLVED_PRINCIPAL = "unresolved"


# ===== BEHAVIORAL SCORING =====
class ScoringConstants:
    # Maximum contribution of each sub-scorer
    WEIGHT_FAILED_ATTEMPTS = 50
    WEIGHT_GPS = 15
    WEIGHT_TYPING = 12
    WEIGHT_TIME_OF_DAY = 8
    WEIGHT_VELOCITY = 10
    WEIGHT_NEW_DEVICE = 5

    POINTS_PER_FAILED_ATTEMPT = 10
    SOFT_FACTORS_CAP = 50
    TOTAL_CAP = 100

    # GPS displacement bands (km)
    GPS_NEAR_KM = 50
    GPS_REGIONAL_KM = 500
    GPS_CONTINENTAL_KM = 2000

    # Typing cadence
    TYPING_MIN_BASELINE_SAMPLES = 3

    # Time of day
    TIME_OF_DAY_GRACE_HOURS = 2

    # Velocity (km/h)
    VELOCITY_IMPOSSIBLE_KMH = 500
    VELOCITY_SUSPICIOUS_KMH = 200
    VELOCITY_MIN_ELAPSED_HOURS = 0.0001

    EARTH_RADIUS_KM = 6371.0


# ===== DEVICE & LOCATION =====
class DeviceConstants:
    FINGERPRINT_LENGTH = 32
    NO_BASELINE_WEIGHT = 15
    DEVICE_MISMATCH_WEIGHT = 25
    LOCATION_UNAVAILABLE_WEIGHT = 10
    LOCATION_MISMATCH_WEIGHT = 20

    NEW_DEVICE_INCREMENT = 15
    SUSPICIOUS_USER_AGENT_INCREMENT = 10
    VPN_INCREMENT = 20
    POINTS_PER_RECENT_FAILURE = 5
    RECENT_FAILURES_CAP = 30

    # A successful access below this risk may enroll missing baselines
    BASELINE_ENROLLMENT_BELOW = 30

    VPN_USER_AGENT_MARKERS = ("vpn", "proxy", "tunnel", "anonymizer")
    BOT_USER_AGENT_MARKERS = ("bot", "crawler", "spider", "curl", "wget", "python-requests")
    BROWSER_USER_AGENT_MARKERS = ("mozilla", "chrome", "safari", "firefox", "edg")


# ===== BASELINES =====
class BaselineConstants:
    MAX_LOCATION_HISTORY = 50
    MAX_KNOWN_DEVICES = 20

    # Expired failure records of every key are swept at most this often
    FAILURE_SWEEP_INTERVAL_SECONDS = 300


# ===== RISK LEVELS =====
class RiskLevelConstants:
    LOW_MAX = 30
    MEDIUM_MAX = 60
    HIGH_MAX = 80


# ===== EXTERNAL CALLS =====
class TimeoutConstants:
    POLICY_DECISION_SECONDS = 5.0
    HEALTH_CHECK_SECONDS = 3.0
    HEALTH_CHECK_INTERVAL_SECONDS = 30.0
    GEOLOCATION_SECONDS = 2.0
    IDENTITY_STORE_SECONDS = 2.0
