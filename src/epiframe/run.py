"""Main script for end-to-end slide computation."""

import logging
import sys
from datetime import datetime
from importlib.resources import files
from pathlib import Path

import hydra
from omegaconf import DictConfig, OmegaConf

from . import config, epi_df, io

logger = logging.getLogger(__name__)
config_yaml = files("epiframe").joinpath("configs/_epiframe.yaml")


@hydra.main(version_base=None, config_path=str(config_yaml.parent.resolve()), config_name=config_yaml.stem)
def main(cfg: DictConfig) -> None:  # pragma: no cover
    st = datetime.now()

    logger.info(f"Loading config from '{cfg.config_path}'")
    task_cfg = config.SlideTaskConfig.load(Path(cfg.config_path))

    logger.info(f"Attempting to load data given:\n{OmegaConf.to_yaml(cfg.data)}")
    data = io.load_data(Path(cfg.data.path), cfg.data.ts_format)

    x = epi_df.as_epi_df(
        data,
        geo_type=cfg.data.geo_type,
        time_type=cfg.data.time_type,
        other_keys=list(cfg.data.other_keys),
    )
    logger.info(
        f"Built epi_df with {len(x):,} rows over {x.data.n_unique(subset=x.group_colnames):,} groups "
        f"(geo_type '{x.geo_type}', time_type '{x.time_type}')."
    )

    result = task_cfg.apply(x)

    Path(cfg.output_filepath).parent.mkdir(exist_ok=True, parents=True)
    result.data.write_parquet(cfg.output_filepath, use_pyarrow=True)
    logger.info(f"Completed in {datetime.now() - st}. Results saved to '{cfg.output_filepath}'.")


def cli():
    """Main entry point for the script, allowing for no-arg help messages."""

    if len(sys.argv) == 1:
        print("Usage: epiframe-cli [OPTIONS]")
        print("Try 'epiframe-cli --help' for more information.")
        sys.exit(1)

    main()
