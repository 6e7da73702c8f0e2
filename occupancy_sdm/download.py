"""
Download helpers for occurrence points, the covariate stack and the
species expert range.

Each file is fetched once with a single request; an existing file is
reused. There is no retry: a failed request raises and the calling
pipeline step records the error.
"""

import os
import zipfile

import requests

from occupancy_sdm import config
from occupancy_sdm.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def download_file(url, dest_path, timeout=None):
    """Fetch *url* into *dest_path* unless the file already exists.

    Returns the destination path. HTTP errors propagate as
    ``requests.HTTPError``.
    """
    if os.path.exists(dest_path):
        log.info("Already present: %s", dest_path)
        return dest_path

    os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)
    timeout = timeout or config.DOWNLOAD_TIMEOUT_S

    log.info("Downloading %s", url)
    r = requests.get(url, timeout=timeout, allow_redirects=True)
    r.raise_for_status()

    tmp_path = dest_path + ".part"
    with open(tmp_path, "wb") as f:
        f.write(r.content)
    os.replace(tmp_path, dest_path)

    log.info("Saved %s (%d bytes)", dest_path, len(r.content))
    return dest_path


def download_occurrences(data_dir, url=config.OCCURRENCE_URL,
                         filename=config.OCCURRENCE_FILENAME):
    return download_file(url, os.path.join(data_dir, filename))


def download_env_stack(data_dir, url=config.ENV_URL, filename=config.ENV_FILENAME):
    return download_file(url, os.path.join(data_dir, filename))


def download_expert_range(data_dir, species=config.SPECIES):
    """Fetch the expert range shapefile (zipped) and unpack it.

    Returns the path of the ``.shp`` file.
    """
    shp_path = os.path.join(data_dir, f"{species}.shp")
    if os.path.exists(shp_path):
        log.info("Expert range already present: %s", shp_path)
        return shp_path

    url = config.EXPERT_RANGE_URL.format(
        species="%20".join(species.split("_")),
        filename=species,
    )
    zip_path = download_file(url, os.path.join(data_dir, f"{species}.zip"))
    with zipfile.ZipFile(zip_path) as zf:
        zf.extractall(data_dir)

    if not os.path.exists(shp_path):
        raise FileNotFoundError(f"Archive {zip_path} did not contain {species}.shp")
    return shp_path
