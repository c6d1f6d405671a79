"""rossi_oospore: hourly primary-infection model for grapevine downy mildew.

Implements the oospore life cycle of Rossi et al. (2008):
  - Hydro-thermal time clock driving oospore dormancy breaking
  - Rain-triggered oospore cohorts
  - Germination, sporangia survival, zoospore release and dispersal
  - Infection (oil spots on leaves) from wetness duration × temperature

Reference:
  Rossi V., Caffi T., Giosuè S., Bugiani R. (2008). A mechanistic model
  simulating primary infections of downy mildew in grapevine.
  Ecological Modelling 212: 480–491.
"""

__version__ = "0.1.0"
