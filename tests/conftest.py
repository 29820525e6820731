"""
Pytest configuration and shared fixtures for slabsight tests.
"""

from pathlib import Path

import pytest
from hypothesis import Verbosity, settings

settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
)


def pytest_configure(config):
    settings.load_profile("default")


SLABINFO = """\
slabinfo - version: 2.1
# name            <active_objs> <num_objs> <objsize> <objperslab> <pagesperslab> : tunables <limit> <batchcount> <sharedfactor> : slabdata <active_slabs> <num_slabs> <sharedavail>
kmalloc-4k          1024   1100   4096    8    8 : tunables    0    0    0 : slabdata    137    137      0
kmalloc-1k          2048   2112   1024   32    8 : tunables    0    0    0 : slabdata     66     66      0
dentry             51234  52000    192   21    1 : tunables    0    0    0 : slabdata   2476   2476      0
broken-row          abc
"""

VMSTAT = """\
nr_free_pages 123456
nr_slab_reclaimable 4000
nr_slab_unreclaimable 9000
pgalloc_dma 10
pgalloc_normal 990
pgsteal_kswapd 77
slabs_scanned 150
"""

BUDDYINFO = """\
Node 0, zone      DMA      1      1      1      0      2      1      1      0      1      1      3
Node 0, zone    DMA32      5      4      3      2      1      0      0      0      0      0      0
Node 0, zone   Normal    100     50     20     10      5      2      1      0      0      0      0
"""


@pytest.fixture
def proc_root(tmp_path: Path) -> Path:
    """A fake /proc with slabinfo, vmstat and buddyinfo."""
    root = tmp_path / "proc"
    root.mkdir()
    (root / "slabinfo").write_text(SLABINFO, encoding="utf-8")
    (root / "vmstat").write_text(VMSTAT, encoding="utf-8")
    (root / "buddyinfo").write_text(BUDDYINFO, encoding="utf-8")
    return root
