"""
Centralized configuration defaults for backup extraction runs.

These are operational settings shared by every run. Environment variables,
a config file and CLI arguments can override them at runtime.
"""


class ProcessingDefaults:
    """
    Centralized operational configuration for backup extraction.

    All values are defaults that can be overridden:
    - sbr-extractor -d ./out --no-attachments sms-20240101.xml
    - SBR_EXTRACTOR_LOG_LEVEL=DEBUG sbr-extractor calls-20240101.zip
    """

    # Output layout
    OUTPUT_DIR = "."
    ATTACHMENT_DIR_NAME = "images"  # Under the output directory
    DATABASE_FILE_NAME = "result.db"  # Under the output directory unless absolute

    # Stream decoding
    READ_CHUNK_SIZE = 1024 * 1024  # Bytes fed to the XML parser per read
    REPAIR_ENTITIES = True
    FLAT_FILE_BUFFER_SIZE = 64 * 1024

    # Progress and diagnostics
    PROGRESS_INTERVAL = 10000  # Records between progress log lines
    MAX_DIAGNOSTICS_PER_CATEGORY = 1000

    # Contacts
    DEFAULT_REGION = "US"  # Region for numbers without a country code

    # Database (ODBC target only)
    CONNECTION_TIMEOUT = 30
    DB_SCHEMA = "dbo"

    # Logging
    LOG_LEVEL = "WARNING"

    @classmethod
    def to_dict(cls) -> dict:
        """
        Export all defaults as a dictionary.

        Returns:
            Dictionary of all ProcessingDefaults class attributes.
        """
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if not key.startswith('_') and key.isupper()
        }

    @classmethod
    def log_summary(cls, logger=None):
        """
        Log a summary of all operational defaults.

        Args:
            logger: Optional logger instance. If None, prints to stdout.
        """
        config_dict = cls.to_dict()
        summary = "\n".join([f"  {key}: {value}" for key, value in sorted(config_dict.items())])
        message = f"Processing Configuration Defaults:\n{summary}"

        if logger:
            logger.info(message)
        else:
            print(message)
