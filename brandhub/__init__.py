# Brand Hub - Business Profile Integration
# ========================================
# Integration layer of the brand/storefront admin application, using a
# layered architecture:
#
# ARCHITECTURE LAYERS:
# - Presentation:   JSON API consumed by the admin UI (web/)
# - Infrastructure: External services (Google Business Profile, config)
#
# Brand/store persistence, microsite rendering and the reply assistant live
# outside this package and talk to it only through BusinessProfileClient.
