"""oslo.config options for the broker agent.

Options live in the ``broker`` group.  They default to ``None`` so that only
values actually set on the command line or in an oslo config file override
the YAML configuration.
"""

import dataclasses

from oslo_config import cfg

broker_opts = [
    cfg.StrOpt('system_namespace',
               default=None,
               help='Namespace hosting the shared broker filter and ingress services.'),
    cfg.StrOpt('cluster_domain',
               default=None,
               help='DNS suffix used for in-cluster service URLs. '
                    'If not set, discovered from /etc/resolv.conf.'),
    cfg.StrOpt('ingress_service',
               default=None,
               help='Name of the shared broker ingress service.'),
    cfg.StrOpt('filter_service',
               default=None,
               help='Name of the shared broker filter service.'),
    cfg.BoolOpt('subscriber_via_filter',
                default=None,
                help='Deliver trigger subscriptions through the filter '
                     'service instead of directly to the subscriber.'),
    cfg.ListOpt('addressable_kinds',
                default=None,
                help='Additional Kind.group identifiers exposing '
                     'status.address. Example: ["Service.serving.knative.dev"]'),
    cfg.ListOpt('conditionable_kinds',
                default=None,
                help='Additional Kind.group identifiers exposing a Ready '
                     'condition for trigger dependencies.'),
]

GROUP = 'broker'


def register_broker_opts(conf=cfg.CONF):
    """Register broker options, settable on the command line or in config files."""
    conf.register_cli_opts(broker_opts, group=GROUP)


def apply_overrides(conf, controller):
    """Return ``controller`` with every option set in ``conf`` applied.

    Args:
        conf: ConfigOpts instance the options were registered on
        controller: ControllerConfig loaded from YAML

    Returns:
        A new ControllerConfig
    """
    group = getattr(conf, GROUP)
    overrides = {}
    for opt in broker_opts:
        value = getattr(group, opt.dest)
        if value is None:
            continue
        if isinstance(opt, cfg.ListOpt):
            value = tuple(value)
        overrides[opt.dest] = value
    if not overrides:
        return controller
    return dataclasses.replace(controller, **overrides)
