"""
Core library for image bundle building.

Subpackages:
    bundle      - index + data container format
    validation  - content type and header checks
    download    - aiohttp image fetcher
    security    - URL checks
    errors      - error taxonomy
    logging     - structured logging
"""
