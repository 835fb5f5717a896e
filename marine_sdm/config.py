# marine_sdm/config.py

# ---------- Coordinates ----------
GEOGRAPHIC_CRS = "EPSG:4326"
DEFAULT_CRS = "EPSG:32632"     # UTM zone 32N, meters

# Predefined regions as (min_lon, min_lat, max_lon, max_lat)
REGIONS = {
    "inner_danish_waters": {
        "bbox": (9.0, 54.0, 13.5, 58.0),
        "description": "Kattegat, Belt Seas and western Baltic",
    },
}
DEFAULT_REGION = "inner_danish_waters"

# ISO 3166-1 alpha-3 codes of the countries drawn as coastline
COUNTRIES = ("DNK", "SWE", "DEU")

# ---------- Model selection ----------
SIGNIFICANCE_LEVEL = 0.05      # covariates with larger p-values are removal candidates
AIC_IMPROVEMENT = 2.0          # smallest AIC drop treated as a real improvement

# ---------- GAM ----------
DEFAULT_N_SPLINES = 10         # basis size per smooth term
MIN_N_SPLINES = 3
GAM_MAX_ITER = 100

# ---------- GLM ----------
GLM_MAX_ITER = 100

# ---------- Bathymetry ----------
BATHYMETRY_RESOLUTION = 1.0    # arc-minutes
CONTOUR_LEVELS = [-100, -50, -30, -20, -10]

# ---------- Maps ----------
PROBABILITY_CMAP = "viridis"
LABEL_COLORS = {0: "#264653", 1: "#E76F51"}
LAND_COLOR = "#D9D9D9"
