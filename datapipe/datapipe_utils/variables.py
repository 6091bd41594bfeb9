import os
from platformdirs import user_config_dir

APP_NAME = "datapipe"
DATAPIPE_HOME = os.getenv("DATAPIPE_HOME", user_config_dir(APP_NAME))
CONFIG_FILE = os.path.join(DATAPIPE_HOME, "datapipe.ini")
CONFIG_SECTION = "datapipe"
