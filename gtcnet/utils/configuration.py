"""Configuration utilities.

This module logs the resolved hydra configuration of a control network build in a user-friendly way.
"""

from omegaconf import DictConfig, OmegaConf

# (label, dotted path in the config) of the parameters shown in the summary.
KEY_PARAMETERS = [
    ("Match prefix", "ControlNetworkBuilder.match_prefix"),
    ("Min matches per image pair", "ControlNetworkBuilder.min_matches"),
    ("Min convergence angle (deg)", "ControlNetworkBuilder.min_convergence_angle"),
    ("Triangulate", "ControlNetworkBuilder.triangulate"),
    ("Ground control datum", "GroundControl.datum"),
]


def _log_divider(logger) -> None:
    logger.info("🔧" + "=" * 78 + "🔧")


def format_config_section(cfg_section: DictConfig, section_name: str, indent: int = 0) -> str:
    """Formats a configuration section, and its nested sections, as an indented list."""
    indent_str = "  " * indent
    header = section_name
    if "_target_" in cfg_section:
        header += "." + cfg_section._target_.split(".")[-1]
    lines = [f"{indent_str}• {header}"]

    for key, value in cfg_section.items():
        if key.startswith("_"):
            continue
        if isinstance(value, DictConfig):
            lines.append(format_config_section(value, key, indent + 1))
        else:
            lines.append(f"{indent_str}  • {key}: {value}")
    return "\n".join(lines)


def log_configuration_summary(main_cfg: DictConfig, logger) -> None:
    """Logs the parameters which most affect the size and accuracy of the control network."""
    logger.info("📊 Key Parameters:")
    for label, path in KEY_PARAMETERS:
        value = OmegaConf.select(main_cfg, path)
        if value is not None:
            logger.info(f"   • {label}: {value}")


def log_full_configuration(main_cfg: DictConfig, logger) -> None:
    """Logs the complete configuration hierarchy, followed by its key parameters."""
    _log_divider(logger)
    logger.info("🔧 CONTROL NETWORK CONFIGURATION")
    _log_divider(logger)

    for key, value in main_cfg.items():
        if isinstance(value, DictConfig):
            logger.info(format_config_section(value, key))
        else:
            logger.info(f"• {key}: {value}")

    log_configuration_summary(main_cfg, logger)
    _log_divider(logger)
