# Services layer: stores and external collaborators used by the background jobs
