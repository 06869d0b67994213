from dotenv import load_dotenv

# settings are read from the environment at import time by each module
load_dotenv()
