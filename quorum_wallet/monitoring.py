# quorum_wallet/monitoring.py
import time
import psutil
import socket
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app
from wsgiref.simple_server import make_server, WSGIServer
from socketserver import ThreadingMixIn
import threading
import logging

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the wallet."""
    allow_reuse_address = True
    daemon_threads = True


class Monitor:
    """
    Prometheus metrics for one wallet.

    Metrics live in an isolated registry so several wallets (or tests) can
    share a process. The HTTP exporter only runs after `start_server()`.
    """

    def __init__(self, host="127.0.0.1", port=9090):
        self.wallet = None
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        self.registry = CollectorRegistry()

        self.call_counter = Counter('wallet_calls_total', 'Wallet calls processed', ['method', 'status'], registry=self.registry)
        self.call_latency = Histogram('wallet_call_latency_seconds', 'Time to process a wallet call', ['method'], registry=self.registry)
        self.executions = Counter('wallet_executions_total', 'Transactions executed after reaching quorum', registry=self.registry)
        self.value_transferred = Counter('wallet_value_transferred_total', 'Base units paid out by executed transactions', registry=self.registry)
        self.pending_transactions = Gauge('wallet_pending_transactions', 'Transactions waiting for quorum', registry=self.registry)
        self.signer_count = Gauge('wallet_signer_count', 'Number of registered signers', registry=self.registry)
        self.vault_balance = Gauge('wallet_vault_balance', 'Spendable vault balance in base units', registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)

    def bind(self, wallet):
        self.wallet = wallet

    def start_server(self, max_retries: int = 5, retry_delay: float = 2):
        """Creates and starts the Prometheus HTTP server with retry logic."""
        app = make_wsgi_app(self.registry)

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98:  # Address already in use
                    if attempt < max_retries - 1:
                        logger.warning(f"Port {self.port} in use, retrying in {retry_delay}s (attempt {attempt+1}/{max_retries})...")
                        time.sleep(retry_delay)
                    else:
                        logger.error(f"Failed to bind to port {self.port} after {max_retries} attempts")
                        raise
                else:
                    raise

    def stop_server(self):
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            if self.thread is not None:
                self.thread.join()
                self.thread = None
            logger.info("Prometheus server stopped.")

    def update(self):
        """Refresh gauges from the bound wallet and the host process."""
        if self.wallet is not None:
            self.pending_transactions.set(len(self.wallet.ledger.pending()))
            self.signer_count.set(self.wallet.signer_count())
            self.vault_balance.set(self.wallet.vault_balance())

        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def record_call(self, method: str, status: str, latency: float):
        self.call_counter.labels(method=method, status=status).inc()
        self.call_latency.labels(method=method).observe(latency)

    def record_execution(self, amount: int):
        self.executions.inc()
        self.value_transferred.inc(amount)
