# main.py
import logging
from shopcatalog.bot import CatalogBot
from shopcatalog.config import setup_logging

def main():
    # Setup logging
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        bot = CatalogBot()
        logger.info("Starting catalog bot...")
        bot.run()
    except Exception as e:
        logger.error(f"Error starting bot: {e}", exc_info=True)
        raise

if __name__ == "__main__":
    main()
