"""
Waste sorting station.

Watches a conveyor with an ultrasonic sensor, streams the camera while an
object is present, classifies it through a hosted detection model and
drives the sorting controller.
"""

__version__ = "0.1.0"
