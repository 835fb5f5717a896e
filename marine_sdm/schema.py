# marine_sdm/schema.py

# Observation identity and date parts
ID_COL = "id"
DAY_COL = "day"
MONTH_COL = "month"
YEAR_COL = "year"
DATE_COL = "date"

# Geographic (degrees) and projected (meters) position
LAT_COL = "lat"
LON_COL = "lon"
X_COL = "x"
Y_COL = "y"

# Binary response: 1 = presence, 0 = absence
LABEL_COL = "presence"

# Column added to prediction grids
PROBABILITY_COL = "probability"

# Environmental covariates, in formula order
COVARIATES = [
    "slope",
    "depth",          # negative, increases toward 0 near shore
    "sandeel",        # annual catch volume of the forage fish
    "chl_day",
    "chl_week",
    "chl_day_lag",    # lagged one month
    "chl_week_lag",
    "sst_day",
    "sst_week",
    "sal_day",
    "sal_week",
]

OBSERVATION_COLUMNS = [ID_COL, DAY_COL, MONTH_COL, YEAR_COL, LAT_COL, LON_COL, LABEL_COL] + COVARIATES

SEASONS = ("winter", "spring", "summer", "autumn")
