import logging
import threading

import prometheus_client
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)


class MetricsExporter:
    """
    DB 파사드 메트릭을 관리하는 Singleton 클래스입니다.
    Prometheus Client 라이브러리를 사용하여 메트릭을 정의하고 업데이트합니다.
    """
    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(MetricsExporter, cls).__new__(cls)
                    cls._instance._initialize_metrics()
        return cls._instance

    def _initialize_metrics(self):
        # 성공한 쿼리 수 (Counter: 계속 증가함)
        self.queries = Counter(
            'sqlfacade_queries_total',
            'Total number of successfully executed SQL statements'
        )

        # 실패한 쿼리 수 (ErrorKind 라벨)
        self.query_errors = Counter(
            'sqlfacade_query_errors_total',
            'Total number of failed SQL statements',
            ['kind']
        )

        # 쿼리 실행 지연 (Histogram)
        self.query_latency = Histogram(
            'sqlfacade_query_latency_seconds',
            'SQL statement execution latency in seconds',
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
        )

    def start_server(self, port=8000):
        """
        Prometheus 메트릭 서버를 시작합니다.
        """
        try:
            prometheus_client.start_http_server(port)
            logger.info("Prometheus metrics server started on port %s", port)
        except OSError as e:
            logger.error("Failed to start metrics server on port %s: %s", port, e)

# Global Instance
metrics = MetricsExporter()
