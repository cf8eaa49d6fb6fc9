from facility_catalog.cli import parse_args


def test_parse_args_defaults():
    args = parse_args(["merge"])
    assert args.command == "merge"
    assert args.group == "all"
    assert args.overlay_config_dir is None
    assert args.strict is False
    assert args.apply is False


def test_parse_args_accepts_overlay_config_dir():
    args = parse_args(["all", "--overlay-config-dir", "config/live"])
    assert args.overlay_config_dir == "config/live"


def test_parse_args_prune_apply():
    args = parse_args(["prune", "--group", "texas", "--apply"])
    assert args.command == "prune"
    assert args.group == "texas"
    assert args.apply is True
