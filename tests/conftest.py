import os

# Use litellm's bundled model cost map instead of fetching it over the network
# at import time; the offline fetch/retry path races on import and can break
# test collection.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")
