# Core configuration, database, security, logging and metrics
