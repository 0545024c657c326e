import sys
from pathlib import Path

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from mps_load.defaults import LoadDefaults, get_defaults, set_defaults


def test_defaults_values():
    defaults = LoadDefaults()
    assert defaults.device_index == 0
    assert defaults.block_size == 256
    assert defaults.grid_size is None
    assert defaults.log_format == "text"
    assert defaults.num_elements > 0
    assert defaults.to_dict()["nvrtc_options"] == []


def test_set_defaults_replaces_global():
    custom = LoadDefaults(num_elements=1024, enable_nvtx=True)
    set_defaults(custom)
    assert get_defaults() is custom
    assert get_defaults().to_dict()["num_elements"] == 1024
