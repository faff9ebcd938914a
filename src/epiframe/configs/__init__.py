"""This subpackage contains the Hydra configuration for epiframe, which is used by `epiframe-cli`.

Configuration File Structure:

.. code-block:: text

    configs/
    ├─ _epiframe.yaml


The slide task itself is described in a separate YAML file, loaded with ``SlideTaskConfig.load``; see
``epiframe.config``. Run ``epiframe-cli -h`` for the full list of arguments.
"""
