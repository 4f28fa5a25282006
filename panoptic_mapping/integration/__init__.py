# Integration module
from .tsdf_integrator import (
    IntegratorType, TsdfIntegratorConfig, TsdfIntegrator,
    MergedTsdfIntegrator, FastTsdfIntegrator, create_tsdf_integrator
)
from .integrator_base import IntegratorBase, depth_to_pointcloud
from .naive_integrator import NaiveIntegrator, PartialCloud, segment_by_id

__all__ = [
    'IntegratorType', 'TsdfIntegratorConfig', 'TsdfIntegrator',
    'MergedTsdfIntegrator', 'FastTsdfIntegrator', 'create_tsdf_integrator',
    'IntegratorBase', 'depth_to_pointcloud',
    'NaiveIntegrator', 'PartialCloud', 'segment_by_id'
]
