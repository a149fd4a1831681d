import os
import configparser
from pathlib import Path


class Config:
    """Configuration manager for the Picking Replenishment Scheduler."""

    DEFAULTS = {
        'DATABASE': {
            'engine': 'postgresql',
            'host': 'localhost',
            'port': '5432',
            'database': 'picking',
            'username': 'postgres',
            'password': 'postgres',
            'pool_size': '10',
            'max_overflow': '20',
            'pool_timeout': '30',
            'pool_recycle': '1800',
            'echo': 'False'
        },
        'LOGGING': {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'directory': 'logs',
            'max_size_mb': '10',
            'backup_count': '5',
            'console_output': 'True'
        },
        'SCHEDULER': {
            'tick_seconds': '60',
            'startup_delay_seconds': '5',
            'completion_grace_minutes': '5',
            'max_workers': '4'
        },
        'GATEWAY': {
            'timeout_seconds': '15',
            'mock_failure_rate': '0.05',
            'mock_min_latency_ms': '50',
            'mock_max_latency_ms': '200'
        },
        'DEFAULTS': {
            'sync_interval_minutes': '30',
            'active_branches': '01,02,03'
        }
    }

    def __init__(self, config_path=None):
        """Load configuration from an ini file, falling back to defaults.

        Args:
            config_path: Optional path to the ini file. Defaults to the
                ``PICKING_CONFIG`` environment variable or config/settings.ini.
        """
        if config_path is None:
            config_path = os.getenv('PICKING_CONFIG', os.path.join('config', 'settings.ini'))

        self._config_path = Path(config_path)
        self._config = configparser.ConfigParser(interpolation=None)
        self._config.read_dict(self.DEFAULTS)

        if self._config_path.exists():
            self._config.read(self._config_path)

    def save(self):
        """Write the current configuration to the ini file."""
        if not self._config_path.parent.exists():
            self._config_path.parent.mkdir(parents=True)

        with open(self._config_path, 'w') as configfile:
            self._config.write(configfile)

    def get(self, section, key, default=None):
        """Get configuration value."""
        try:
            return self._config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section, key, default=None):
        """Get configuration value as integer."""
        try:
            return self._config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_float(self, section, key, default=None):
        """Get configuration value as float."""
        try:
            return self._config.getfloat(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_boolean(self, section, key, default=None):
        """Get configuration value as boolean."""
        try:
            return self._config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def set(self, section, key, value):
        """Set configuration value (in memory; call save() to persist)."""
        if not self._config.has_section(section):
            self._config.add_section(section)

        self._config.set(section, key, str(value))

    def get_db_url(self):
        """Generate SQLAlchemy database URL.

        The DATABASE_URL environment variable wins over the ini file.
        """
        env_url = os.getenv('DATABASE_URL')
        if env_url:
            return env_url

        engine = self.get('DATABASE', 'engine', 'postgresql')
        username = self.get('DATABASE', 'username', 'postgres')
        password = self.get('DATABASE', 'password', 'postgres')
        host = self.get('DATABASE', 'host', 'localhost')
        port = self.get('DATABASE', 'port', '5432')
        database = self.get('DATABASE', 'database', 'picking')

        if engine.startswith('sqlite'):
            return f"{engine}:///{database}"

        return f"{engine}://{username}:{password}@{host}:{port}/{database}"

    @property
    def log_config(self):
        """Get logging configuration."""
        return {
            'level': self.get('LOGGING', 'level', 'INFO'),
            'format': self.get('LOGGING', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            'directory': self.get('LOGGING', 'directory', 'logs'),
            'max_size_mb': self.get_int('LOGGING', 'max_size_mb', 10),
            'backup_count': self.get_int('LOGGING', 'backup_count', 5),
            'console_output': self.get_boolean('LOGGING', 'console_output', True)
        }

    @property
    def pool_config(self):
        """Get connection pool configuration."""
        return {
            'pool_size': self.get_int('DATABASE', 'pool_size', 10),
            'max_overflow': self.get_int('DATABASE', 'max_overflow', 20),
            'pool_timeout': self.get_int('DATABASE', 'pool_timeout', 30),
            'pool_recycle': self.get_int('DATABASE', 'pool_recycle', 1800),
            'echo': self.get_boolean('DATABASE', 'echo', False)
        }

    @property
    def scheduler_config(self):
        """Get scheduler loop configuration."""
        return {
            'tick_seconds': self.get_float('SCHEDULER', 'tick_seconds', 60.0),
            'startup_delay_seconds': self.get_float('SCHEDULER', 'startup_delay_seconds', 5.0),
            'completion_grace_minutes': self.get_int('SCHEDULER', 'completion_grace_minutes', 5),
            'max_workers': self.get_int('SCHEDULER', 'max_workers', 4)
        }

    @property
    def gateway_config(self):
        """Get gateway configuration."""
        return {
            'timeout_seconds': self.get_float('GATEWAY', 'timeout_seconds', 15.0),
            'mock_failure_rate': self.get_float('GATEWAY', 'mock_failure_rate', 0.05),
            'mock_min_latency_ms': self.get_int('GATEWAY', 'mock_min_latency_ms', 50),
            'mock_max_latency_ms': self.get_int('GATEWAY', 'mock_max_latency_ms', 200)
        }

    @property
    def company_defaults(self):
        """Get defaults applied when a company's settings leave a field empty."""
        branches = self.get('DEFAULTS', 'active_branches', '01,02,03')
        return {
            'sync_interval_minutes': self.get_int('DEFAULTS', 'sync_interval_minutes', 30),
            'active_branches': [b.strip() for b in branches.split(',') if b.strip()]
        }

# Global config instance
config = Config()
