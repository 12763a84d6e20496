"""
Layered configuration files, validated against a schema.

A configuration named "esera" is read from these files, in increasing order of precedence:

- esera.default.cfg     shipped defaults
- esera.<os>.cfg        platform specialization (windows, linux, osx)
- ~/esera.cfg           user overrides
- esera.cfg             local overrides

and validated against esera.schema.cfg, which converts the values to their declared types and
fills in defaults for anything not given.
"""
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section
from validate import Validator

# The default extension for configuration files
config_extension = '.cfg'

# the directory holding the shipped configuration files
config_directory = os.path.dirname(os.path.abspath(__file__))


def config_flavor(name, flavor=None):
    configname = name if not flavor else name + '.' + flavor
    return configname


def config_filename(name, directory=None):
    """
    Determines the location of a config file.
    """
    return os.path.join(directory or config_directory, name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, interpolation='Template', file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, subpart=None) -> ConfigObj:
    """
    Loads a specialization of a config file. The configuration file is expected to be named
    after the base, followed by a period and then the specialization, if the specialization is given,
    otherwise just the base name. A missing file yields an empty configuration.
    """
    return load_config_file_base(config_filename(config_flavor(name, subpart), directory), False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def load_config(name='esera', directory=None, schema_directory=None):
    """
    Loads all the configuration files that relate to the given name, flattens them into a single
    configuration and validates it against the schema.
    :param directory: the location of the configuration files. Defaults to the package directory.
    :param schema_directory: the location of the schema. Defaults to the package directory.
    :return: the validated ConfigObj
    """
    directory = directory or config_directory
    schema = config_filename(config_flavor(name, 'schema'), schema_directory or config_directory)
    config = ConfigObj(configspec=schema)
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, os_name()))
    config.merge(load_config_file_base(os.path.expanduser('~/' + name + config_extension), must_exist=False))
    config.merge(config_flavor_file(name, directory))

    result = config.validate(Validator())
    if result is not True:
        raise ConfigObjError("the config file %s failed validation %s" % (name, result))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the named configuration section
    :param conf:        The root configuration
    :param path:        An iterable that lists the names of the sections to resolve
    :return: The configuration section identified by the path, or None
    """
    for p in path:
        conf = conf.get(p, None)
        if conf is None:
            return None
    return conf


def apply_conf(conf: Section, target):
    """
    Applies the attributes contained in a configuration section to a target object.
    Only attributes the target already has are set.
    """
    for k, v in conf.items():
        if hasattr(target, k):
            setattr(target, k, v)
    return target


def apply_conf_path(conf: Section, config_path, target):
    """
    Applies the section at a dotted path, such as 'session', to a target object.
    """
    section = fetch_conf_path(conf, config_path.split('.'))
    if section:
        apply_conf(section, target)
    return target
