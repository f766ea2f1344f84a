# Cassandra Call Source
# This module opens a session against a Cassandra cluster and streams the rows of
# the call data table so they can be aggregated by CallSuccessProcessor.

import logging
import ssl
from typing import Any, Dict, Iterator, List, Optional

from cassandra import DriverException
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile, NoHostAvailable
from cassandra.policies import RoundRobinPolicy
from cassandra.query import SimpleStatement, dict_factory

from call_success_processor import DEFAULT_CHUNK_SIZE, ConfigurationError

logger = logging.getLogger("CallSuccessReport")

CALL_RECORDS_QUERY = "SELECT * FROM calldrop.userdata;"


def parse_contact_points(contact_points: str) -> List[str]:
    """
    Split a comma-separated contact point string into hosts.

    Args:
        contact_points: e.g. "127.0.0.1", "127.0.0.1,127.0.0.2", "server1.domain.com"

    Returns:
        List of hosts with surrounding whitespace and blank entries removed
    """
    hosts = [host.strip() for host in contact_points.split(',')]
    hosts = [host for host in hosts if host]
    if not hosts:
        raise ConfigurationError(f"No contact points given in {contact_points!r}")
    return hosts


def build_ssl_context(ssl_cert_path: str) -> ssl.SSLContext:
    """
    Create an SSL context trusting the PEM certificate at the given path.

    The peer identity (host name) of every node is verified.

    Args:
        ssl_cert_path: Path to a PEM encoded certificate

    Returns:
        Configured SSLContext
    """
    try:
        with open(ssl_cert_path, 'r') as cert_file:
            cert = cert_file.read()
    except OSError as e:
        raise ConfigurationError(f"Failed to read file {ssl_cert_path}: {str(e)}") from e

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    try:
        context.load_verify_locations(cadata=cert)
    except (ssl.SSLError, ValueError) as e:
        raise ConfigurationError(f"Failed to add ssl cert {ssl_cert_path}: {str(e)}") from e

    context.verify_mode = ssl.CERT_REQUIRED
    context.check_hostname = True
    return context


class CassandraCallSource:
    """
    A class for reading call detail records from Cassandra.
    """

    def __init__(self, contact_points: str, ssl_cert_path: Optional[str] = None,
                 fetch_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize the source with connection settings.

        Args:
            contact_points: Comma-separated hosts to connect to
            ssl_cert_path: Trusted certificate, SSL is disabled when omitted
            fetch_size: Rows requested per page
        """
        self.contact_points = parse_contact_points(contact_points)
        self.ssl_cert_path = ssl_cert_path
        self.fetch_size = fetch_size
        self.cluster = None
        self.session = None

    def build_cluster(self) -> Cluster:
        """
        Create the driver Cluster for the configured hosts.

        Requests are spread round-robin across hosts and rows come back as dicts.

        Returns:
            Unconnected Cluster
        """
        profile = ExecutionProfile(
            load_balancing_policy=RoundRobinPolicy(),
            row_factory=dict_factory,
        )
        options: Dict[str, Any] = {
            'contact_points': self.contact_points,
            'execution_profiles': {EXEC_PROFILE_DEFAULT: profile},
        }
        if self.ssl_cert_path:
            logger.info(f"Using SSL with trusted certificate {self.ssl_cert_path}")
            options['ssl_context'] = build_ssl_context(self.ssl_cert_path)

        return Cluster(**options)

    def connect(self):
        """
        Open the cluster session.

        Returns:
            The driver Session
        """
        logger.info(f"Connecting to {', '.join(self.contact_points)}")
        self.cluster = self.build_cluster()
        try:
            self.session = self.cluster.connect()
        except (NoHostAvailable, DriverException) as e:
            logger.error(f"Error connecting to cluster: {str(e)}")
            self.close()
            raise

        logger.info("Connected")
        return self.session

    def fetch_call_records(self) -> Iterator[Dict[str, Any]]:
        """
        Run the call data query and yield rows as the driver pages through them.

        Yields:
            One dict per row, keyed by column name
        """
        if self.session is None:
            self.connect()

        statement = SimpleStatement(CALL_RECORDS_QUERY, fetch_size=self.fetch_size)
        logger.debug(f"Executing: {CALL_RECORDS_QUERY}")
        try:
            result = self.session.execute(statement)
            for row in result:
                yield row
        except DriverException as e:
            logger.error(f"Error executing query: {str(e)}")
            raise

    def close(self) -> None:
        """
        Shut down the cluster, if connected, and forget the session.
        """
        if self.cluster is not None:
            self.cluster.shutdown()
        self.cluster = None
        self.session = None

    def __enter__(self) -> 'CassandraCallSource':
        self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
