# Infrastructure Layer
# ====================
# Contains all external service integrations:
# - gbp/: Google Business Profile client (auth, fallback engine, normalizer)
# - config/: Environment and settings management
