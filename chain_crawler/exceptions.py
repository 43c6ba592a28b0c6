class BackfillError(Exception):
    """

    Raised when issues occur with backfilling data

    """


class BackfillHostError(BackfillError):
    """Raised when the remote host returns an error, fails to provide correct data, or cannot be reached"""


class DatabaseError(Exception):
    """

    Raised when issues occur with database operations

    """


class DecodingError(Exception):
    """

    Raised when issues occur with event decoding or signature recovery during data backfills

    """


class ConfigError(Exception):
    """
    Raised when the crawler configuration or the contract configuration file is invalid.  Troubleshooting steps:

    * Verify that start_block is less than or equal to end_block, and that batch_size is positive
    * Check that every contract ABI in the configuration file is a valid JSON string
    * Double check that event signatures are 0x prefixed 32 byte topic hashes

    """
