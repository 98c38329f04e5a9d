# Copy this file to `config.py` and adjust the values.
# Or set env vars of the same name instead (config.py wins when both are set).

START_URL = "https://jaslangdon.com/"

# CLI output; relative paths land in the working directory.
OUTPUT_CSV = "image-detailsPlus.csv"

# Crawl limits
MAX_LINKS = 10
NAV_TIMEOUT_SECONDS = 30
PROBE_TIMEOUT_SECONDS = 5

# Web server. Leave WEBAPP_CSV_PATH empty to write ~/Desktop/image-details.csv
WEBAPP_HOST = "127.0.0.1"
WEBAPP_PORT = 3000
WEBAPP_CSV_PATH = ""
WEBAPP_RATE_LIMIT = "60/minute"
WEBAPP_SCRAPE_RATE_LIMIT = "10/minute"
