"""Configuration constants for the forecasting stage."""

# Monthly series: one value per calendar month
SEASONAL_PERIOD = 12
MONTHLY_FREQ = "MS"

# Production forecast horizon (months ahead)
FORECAST_HORIZON = 1

# Rolling-origin cross-validation horizon used for model selection
CV_HORIZON = 10

# Minimum observations before a model family will fit
MIN_OBS_MODEL = 2 * SEASONAL_PERIOD

# Ljung-Box significance level
LJUNG_BOX_ALPHA = 0.05

# Iteration cap for statsmodels optimizers
MAX_ITER = 200

# Seasonal strength (STL) above which one seasonal difference is taken
SEASONAL_STRENGTH_THRESHOLD = 0.64

# Significance level of the KPSS test deciding non-seasonal differencing
KPSS_ALPHA = 0.05

# SARIMAX fits allowed per ARIMA order search
MAX_ORDER_EVALUATIONS = 16
