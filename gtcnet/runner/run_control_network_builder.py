"""Command-line entry point: builds a control network and saves it as JSON.

Example:
    python gtcnet/runner/run_control_network_builder.py --images data/a.tif data/b.tif data/c.tif \
        --cameras_json data/cameras.json --match_prefix matches/run --min_matches 10 --output_cnet out/cnet.json
"""

import argparse
import logging
from typing import List, Optional

import hydra
from hydra.utils import instantiate
from omegaconf import OmegaConf

import gtcnet.utils.configuration as config_utils
import gtcnet.utils.io as io_utils
import gtcnet.utils.logger as logger_utils
from gtcnet.control_network_builder import ControlNetworkBuilder
from gtcnet.loader.ground_control_loader import add_ground_control_cnets, add_ground_control_points
from gtcnet.utils.datum import Datum

logger = logger_utils.get_logger()


class ControlNetworkRunner:
    tag = "Control network builder"

    def __init__(self, override_args: Optional[List[str]] = None) -> None:
        argparser: argparse.ArgumentParser = self.construct_argparser()
        self.parsed_args: argparse.Namespace = argparser.parse_args(args=override_args)

        # Configure the logging system
        log_level = getattr(logging, self.parsed_args.log.upper(), None)
        if log_level is not None:
            logger.setLevel(log_level)

    def construct_argparser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(description=self.tag)

        parser.add_argument("--images", type=str, nargs="+", required=True, help="Image paths, in image-list order.")
        parser.add_argument(
            "--cameras_json",
            type=str,
            required=True,
            help="JSON file with one pinhole camera per image, see `gtcnet.utils.io.read_cameras_json`.",
        )
        parser.add_argument(
            "--config_name",
            type=str,
            default="control_network_builder.yaml",
            help="Config in gtcnet/configs, e.g. `control_network_builder.yaml` or `parallel.yaml`.",
        )
        parser.add_argument("--match_prefix", type=str, default=None, help="Prefix of the match files.")
        parser.add_argument(
            "--min_matches", type=int, default=None, help="Match files with fewer matches are not loaded."
        )
        parser.add_argument(
            "--min_angle",
            type=float,
            default=None,
            help="Minimum convergence angle (degrees) of a pair of rays used for triangulation.",
        )
        parser.add_argument("--no_triangulate", action="store_true", help="Do not triangulate the control points.")
        parser.add_argument("--gcp_files", type=str, nargs="*", default=None, help="Ground control text files.")
        parser.add_argument("--gcp_cnets", type=str, nargs="*", default=None, help="Ground control networks (JSON).")
        parser.add_argument("--datum", type=str, default=None, help="Datum of the ground control points.")
        parser.add_argument("--output_cnet", type=str, default="cnet.json", help="Path of the output network.")
        parser.add_argument(
            "-l",
            "--log",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            default="INFO",
            help="Set the logging level",
        )
        return parser

    def construct_config(self):
        """Loads the config, then applies the command-line overrides.

        All configs are relative to the gtcnet module.
        """
        with hydra.initialize_config_module(config_module="gtcnet.configs", version_base=None):
            main_cfg = hydra.compose(config_name=self.parsed_args.config_name)

        args = self.parsed_args
        if args.match_prefix is not None:
            main_cfg.ControlNetworkBuilder.match_prefix = args.match_prefix
        if args.min_matches is not None:
            main_cfg.ControlNetworkBuilder.min_matches = args.min_matches
        if args.min_angle is not None:
            main_cfg.ControlNetworkBuilder.min_convergence_angle = args.min_angle
        if args.no_triangulate:
            main_cfg.ControlNetworkBuilder.triangulate = False
        if args.gcp_files is not None:
            main_cfg.GroundControl.gcp_files = args.gcp_files
        if args.gcp_cnets is not None:
            main_cfg.GroundControl.gcp_cnet_files = args.gcp_cnets
        if args.datum is not None:
            main_cfg.GroundControl.datum = args.datum
        return main_cfg

    def run(self) -> bool:
        main_cfg = self.construct_config()
        config_utils.log_full_configuration(main_cfg, logger)
        builder: ControlNetworkBuilder = instantiate(main_cfg.ControlNetworkBuilder)
        logger.info("\n\nControlNetworkBuilder: " + str(builder))

        image_files = self.parsed_args.images
        camera_models = io_utils.read_cameras_json(self.parsed_args.cameras_json)
        if len(camera_models) != len(image_files):
            raise ValueError(f"Got {len(camera_models)} cameras for {len(image_files)} images.")

        cnet, success = builder.run(camera_models, image_files)
        if not success:
            logger.error("Unable to build a control network.")
            return False

        gcp_cfg = main_cfg.GroundControl
        if len(gcp_cfg.gcp_files) > 0:
            datum = Datum.from_name(gcp_cfg.datum)
            add_ground_control_points(cnet, image_files, OmegaConf.to_object(gcp_cfg.gcp_files), datum)
        if len(gcp_cfg.gcp_cnet_files) > 0:
            add_ground_control_cnets(cnet, image_files, OmegaConf.to_object(gcp_cfg.gcp_cnet_files))

        io_utils.write_control_network(self.parsed_args.output_cnet, cnet)
        logger.info("Saved %s to %s", cnet, self.parsed_args.output_cnet)
        return True


if __name__ == "__main__":
    runner = ControlNetworkRunner()
    runner.run()
