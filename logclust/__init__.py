"""
logclust - Message-id clustering for log anomaly detection

Groups log message ids that tend to occur together, by the mutual
information of their occurrence across time intervals.

Architecture:
    - core: matrix containers, assertions, exceptions
    - engines: IClust local search and K-Means (similarity / points -> partition)
    - training: interval stream -> mutual information -> filtered, named clusters
    - config: YAML configuration
    - utils: logging, parallel runs

Quick Start:
    from logclust.config import ClusteringConfig
    from logclust.training import ClusterTrainer

    config = ClusteringConfig.from_config(num_clusters=8)
    model = ClusterTrainer(config).fit(intervals)
    model.print_user_summary()
"""

__version__ = "0.1.0"
